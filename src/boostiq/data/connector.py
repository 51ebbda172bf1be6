"""Upstream market data sources: 24h tickers and OHLCV candles."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence
import asyncio
import logging

import aiohttp
import numpy as np
import pandas as pd
import ccxt.async_support as ccxt

from ..core.errors import UpstreamTimeoutError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ['timestamp', 'open', 'high', 'low', 'close', 'volume']


def klines_to_frame(rows: Sequence[Sequence[Any]]) -> pd.DataFrame:
    """
    Convert raw kline rows into an OHLCV frame indexed by timestamp.

    Rows that do not carry six finite numbers are dropped; the index is
    sorted and duplicate timestamps keep their last sample, so the result
    is strictly increasing.
    """
    usable = [list(row[:6]) for row in rows or [] if isinstance(row, (list, tuple)) and len(row) >= 6]
    if not usable:
        return pd.DataFrame(columns=OHLCV_COLUMNS[1:], index=pd.DatetimeIndex([], name='timestamp'))

    df = pd.DataFrame(usable, columns=OHLCV_COLUMNS)
    df = df.apply(pd.to_numeric, errors='coerce')
    df = df.replace([np.inf, -np.inf], np.nan).dropna()

    df['timestamp'] = pd.to_datetime(df['timestamp'], unit='ms')
    df.set_index('timestamp', inplace=True)
    df = df[~df.index.duplicated(keep='last')].sort_index()
    return df


class MarketDataSource(ABC):
    """Abstract base class for upstream market data."""

    @abstractmethod
    async def get_tickers(self) -> List[Dict]:
        """Fetch raw 24h ticker records for every symbol."""
        pass

    @abstractmethod
    async def get_candles(self, symbol: str, interval: str = '1h', limit: int = 50) -> pd.DataFrame:
        """Fetch OHLCV candles for one symbol."""
        pass

    @abstractmethod
    async def close(self):
        """Close connection."""
        pass


class CCXTMarketSource(MarketDataSource):
    """
    ccxt-backed source.

    Uses the exchange's raw REST endpoints through ccxt's implicit API so
    records keep the exchange's own field names (``lastPrice``,
    ``priceChangePercent``, ...).
    """

    def __init__(self, exchange_name: str = 'binance', config: Optional[Dict] = None):
        self.exchange_name = exchange_name
        self.config = config or {}

        timeout_ms = int(self.config.get('request_timeout', 10) * 1000)
        ccxt_keys = {k: v for k, v in self.config.items() if k not in ('request_timeout', 'base_url')}
        exchange_class = getattr(ccxt, exchange_name)
        self.exchange = exchange_class({
            'enableRateLimit': True,
            'timeout': timeout_ms,
            **ccxt_keys
        })

        logger.info(f"Initialized ccxt market source for {exchange_name}")

    async def get_tickers(self) -> List[Dict]:
        try:
            tickers = await self.exchange.public_get_ticker_24hr()
            logger.debug(f"Fetched {len(tickers) if isinstance(tickers, list) else '?'} tickers")
            return tickers
        except ccxt.RequestTimeout as e:
            raise UpstreamTimeoutError("Ticker request timed out", stage="fetch_tickers") from e
        except ccxt.NetworkError as e:
            logger.error(f"Network error fetching tickers: {e}")
            raise UpstreamUnavailableError("Ticker source unreachable", stage="fetch_tickers") from e
        except ccxt.ExchangeError as e:
            logger.error(f"Exchange error fetching tickers: {e}")
            raise UpstreamUnavailableError("Ticker source returned an error", stage="fetch_tickers") from e
        except ccxt.BaseError as e:
            logger.error(f"Unexpected ticker response: {e}")
            raise UpstreamUnavailableError("Ticker source returned an unusable response", stage="fetch_tickers") from e

    async def get_candles(self, symbol: str, interval: str = '1h', limit: int = 50) -> pd.DataFrame:
        try:
            rows = await self.exchange.public_get_klines({
                'symbol': symbol,
                'interval': interval,
                'limit': limit,
            })
            df = klines_to_frame(rows)
            logger.debug(f"Retrieved {len(df)} candles for {symbol}")
            return df
        except ccxt.RequestTimeout as e:
            raise UpstreamTimeoutError(f"Candle request for {symbol} timed out", stage="fetch_candles") from e
        except ccxt.BaseError as e:
            logger.error(f"Error fetching candles for {symbol}: {e}")
            raise UpstreamUnavailableError(f"Candles for {symbol} unavailable", stage="fetch_candles") from e

    async def close(self):
        await self.exchange.close()
        logger.info(f"Closed connection to {self.exchange_name}")


class BinanceRestSource(MarketDataSource):
    """Direct Binance REST source over a shared aiohttp session."""

    def __init__(self, base_url: str = 'https://api.binance.com', request_timeout: float = 10):
        self.base_url = base_url.rstrip('/')
        self.timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None
        logger.info(f"Initialized REST market source for {self.base_url}")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def _get_json(self, path: str, stage: str, params: Optional[Dict] = None) -> Any:
        session = await self._get_session()
        try:
            async with session.get(f"{self.base_url}{path}", params=params) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"GET {path} returned {response.status}: {error_text[:500]}")
                    raise UpstreamUnavailableError(
                        f"Upstream returned HTTP {response.status}", stage=stage, status=response.status
                    )
                return await response.json()
        except asyncio.TimeoutError as e:
            raise UpstreamTimeoutError(f"GET {path} timed out", stage=stage) from e
        except aiohttp.ClientError as e:
            logger.error(f"GET {path} failed: {e}")
            raise UpstreamUnavailableError("Upstream unreachable", stage=stage) from e
        except ValueError as e:
            # Body was not valid JSON
            logger.error(f"GET {path} returned an undecodable body: {e}")
            raise UpstreamUnavailableError("Upstream returned an unusable response", stage=stage) from e

    async def get_tickers(self) -> List[Dict]:
        return await self._get_json('/api/v3/ticker/24hr', stage="fetch_tickers")

    async def get_candles(self, symbol: str, interval: str = '1h', limit: int = 50) -> pd.DataFrame:
        rows = await self._get_json(
            '/api/v3/klines',
            stage="fetch_candles",
            params={'symbol': symbol, 'interval': interval, 'limit': limit},
        )
        return klines_to_frame(rows)

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        logger.info(f"Closed REST session to {self.base_url}")


def create_source(config: Dict) -> MarketDataSource:
    """Build the configured data source from the ``source`` config section."""
    name = config.get('name', 'ccxt')
    timeout = config.get('request_timeout', 10)
    if name == 'rest':
        return BinanceRestSource(config.get('base_url', 'https://api.binance.com'), timeout)
    if name == 'ccxt':
        return CCXTMarketSource(config.get('exchange', 'binance'), {'request_timeout': timeout})
    raise ValueError(f"Unknown market data source: {name}")
