"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from boostiq.data.connector import MarketDataSource


def make_raw_ticker(symbol="FOOUSDT", last="2.0", pct="22", volume="60000000", count=500, change="0.4"):
    """Raw Binance-style 24h ticker record (numbers as text)."""
    return {
        "symbol": symbol,
        "lastPrice": last,
        "priceChangePercent": pct,
        "quoteVolume": volume,
        "priceChange": change,
        "count": count,
    }


def make_ohlcv(closes, volumes=None, start="2024-01-01", freq="1h"):
    """OHLCV frame from a list of closes."""
    n = len(closes)
    volumes = volumes if volumes is not None else [1000.0] * n
    dates = pd.date_range(start=start, periods=n, freq=freq)
    return pd.DataFrame(
        {
            "open": closes,
            "high": [c * 1.01 for c in closes],
            "low": [c * 0.99 for c in closes],
            "close": closes,
            "volume": volumes,
        },
        index=dates,
    )


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, seconds):
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


class MockMarketSource(MarketDataSource):
    """In-memory market source counting upstream calls."""

    def __init__(self, tickers=None, candles=None):
        self.tickers = tickers if tickers is not None else []
        self.candles = candles or {}
        self.ticker_calls = 0
        self.candle_calls = []
        self.fail_with = None
        self.candle_failures = set()
        self.closed = False

    async def get_tickers(self):
        self.ticker_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.tickers

    async def get_candles(self, symbol, interval="1h", limit=50):
        self.candle_calls.append(symbol)
        if symbol in self.candle_failures:
            from boostiq.core.errors import UpstreamUnavailableError
            raise UpstreamUnavailableError(f"Candles for {symbol} unavailable", stage="fetch_candles")
        return self.candles.get(symbol, pd.DataFrame())

    async def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_tickers():
    """A snapshot mixing strong, weak, malformed and off-quote records."""
    return [
        make_raw_ticker("FOOUSDT", last="2.0", pct="22", volume="60000000"),
        make_raw_ticker("BARUSDT", last="0.5", pct="12", volume="25000000"),
        make_raw_ticker("BAZUSDT", last="45", pct="9", volume="3000000"),
        make_raw_ticker("QUXUSDT", last="1.5", pct="-4", volume="15000000"),
        make_raw_ticker("NEWUSDT", last="0.02", pct="3", volume="2000000", count=800),
        make_raw_ticker("ETHBTC", last="0.05", pct="30", volume="90000000"),
        {"symbol": "NOVOLUSDT", "lastPrice": "1.0", "priceChangePercent": "40"},
        make_raw_ticker("NANUSDT", last="nan", pct="10", volume="5000000"),
    ]


@pytest.fixture
def mock_source(sample_tickers):
    return MockMarketSource(tickers=sample_tickers)
