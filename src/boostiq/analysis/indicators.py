"""Technical indicators over price and volume series.

Every function is total: short or degenerate input yields a neutral value
instead of raising.
"""

import logging
from typing import Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..core.enums import Trend
from ..core.models import IndicatorSnapshot

logger = logging.getLogger(__name__)

PriceSeries = Union[Sequence[float], np.ndarray, pd.Series]

NEUTRAL_RSI = 50.0
TREND_WINDOW = 5
TREND_THRESHOLD = 0.02


def _as_array(values: PriceSeries) -> np.ndarray:
    return np.asarray(values, dtype=float).ravel()


def calculate_rsi(prices: PriceSeries, period: int = 14) -> float:
    """Relative strength index over the first ``period + 1`` samples."""
    closes = _as_array(prices)
    if period <= 0 or len(closes) < period:
        return NEUTRAL_RSI

    changes = np.diff(closes[:period + 1])
    gains = changes[changes > 0].sum()
    losses = -changes[changes < 0].sum()

    avg_gain = gains / period
    avg_loss = losses / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return float(100.0 - (100.0 / (1.0 + rs)))


def calculate_volatility(prices: PriceSeries) -> float:
    """Population standard deviation (ddof=0) of simple returns, in percent."""
    closes = _as_array(prices)
    if len(closes) < 2:
        return 0.0

    previous = closes[:-1]
    usable = previous != 0
    if not usable.any():
        return 0.0

    returns = np.diff(closes)[usable] / previous[usable]
    return float(np.std(returns) * 100)


def volume_spike_ratio(current_volume: float, avg_volume: Optional[float]) -> float:
    """Current volume relative to its average; 1.0 means no spike signal."""
    if not avg_volume:
        return 1.0
    return float(current_volume / avg_volume)


def detect_trend(prices: PriceSeries) -> Trend:
    """Compare the mean of the last 5 samples with the 5 before them."""
    closes = _as_array(prices)
    if len(closes) < TREND_WINDOW * 2:
        return Trend.NEUTRAL

    recent = closes[-TREND_WINDOW:].mean()
    prior = closes[-TREND_WINDOW * 2:-TREND_WINDOW].mean()
    if prior <= 0:
        return Trend.NEUTRAL

    change = (recent - prior) / prior
    if change > TREND_THRESHOLD:
        return Trend.BULLISH
    elif change < -TREND_THRESHOLD:
        return Trend.BEARISH
    return Trend.NEUTRAL


class IndicatorCalculator:
    """Builds an IndicatorSnapshot from an OHLCV frame."""

    def __init__(self, config: Optional[Dict] = None):
        defaults = self._default_config()
        if config:
            defaults.update({k: v for k, v in config.items() if k in defaults})
        self.config = defaults

    @staticmethod
    def _default_config() -> Dict:
        return {
            "rsi_period": 14,
            "rsi_overbought": 70.0,
            "rsi_oversold": 30.0,
            "volume_spike_threshold": 3.0,
        }

    def build_snapshot(self, ohlcv: pd.DataFrame) -> IndicatorSnapshot:
        """Compute all indicators; an empty frame gives a neutral snapshot."""
        if ohlcv is None or ohlcv.empty:
            return IndicatorSnapshot()

        closes = ohlcv['close']
        volumes = ohlcv['volume']

        rsi = calculate_rsi(closes, self.config["rsi_period"])
        volatility = calculate_volatility(closes)
        trend = detect_trend(closes)

        avg_volume = float(volumes.iloc[:-1].mean()) if len(volumes) > 1 else None
        if avg_volume is not None and not np.isfinite(avg_volume):
            avg_volume = None
        spike = volume_spike_ratio(float(volumes.iloc[-1]), avg_volume)

        flags = []
        if rsi >= self.config["rsi_overbought"]:
            flags.append("rsi_overbought")
        elif rsi <= self.config["rsi_oversold"]:
            flags.append("rsi_oversold")
        if spike >= self.config["volume_spike_threshold"]:
            flags.append("volume_spike")

        logger.debug(
            f"Indicators: rsi={rsi:.1f} vol={volatility:.2f}% spike={spike:.2f} "
            f"trend={trend.value} samples={len(ohlcv)}"
        )

        return IndicatorSnapshot(
            rsi=rsi,
            volatility=volatility,
            volume_spike_ratio=spike,
            trend=trend,
            samples=len(ohlcv),
            flags=flags,
        )
