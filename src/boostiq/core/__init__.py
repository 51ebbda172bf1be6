"""Core module for the scanner."""

from .models import (
    TickerSnapshot, IndicatorSnapshot, ScoreBreakdown, Recommendation,
    ScoredCandidate, MarketStats, MarketOverview, utcnow
)
from .enums import (
    Trend, MarketSentiment, RecommendationTier, RiskLevel, RankBy, QueryKind
)
from .errors import (
    ScannerError, MalformedInputError, UpstreamUnavailableError, UpstreamTimeoutError
)

__all__ = [
    "TickerSnapshot",
    "IndicatorSnapshot",
    "ScoreBreakdown",
    "Recommendation",
    "ScoredCandidate",
    "MarketStats",
    "MarketOverview",
    "utcnow",
    "Trend",
    "MarketSentiment",
    "RecommendationTier",
    "RiskLevel",
    "RankBy",
    "QueryKind",
    "ScannerError",
    "MalformedInputError",
    "UpstreamUnavailableError",
    "UpstreamTimeoutError",
]
