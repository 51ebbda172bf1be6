"""Technical analysis module."""

from .indicators import (
    calculate_rsi,
    calculate_volatility,
    volume_spike_ratio,
    detect_trend,
    IndicatorCalculator,
)

__all__ = [
    "calculate_rsi",
    "calculate_volatility",
    "volume_spike_ratio",
    "detect_trend",
    "IndicatorCalculator",
]
