"""Core enumerations for the scanner."""

from enum import Enum


class Trend(str, Enum):
    """Short-term price trend."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class MarketSentiment(str, Enum):
    """Breadth-based market sentiment."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class RecommendationTier(str, Enum):
    """Recommendation tiers, strongest first."""
    STRONG_BUY = "strong_buy"
    MODERATE_BUY = "moderate_buy"
    WATCH = "watch"
    AVOID = "avoid"


class RiskLevel(str, Enum):
    """Risk levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RankBy(str, Enum):
    """Primary sort key for a ranked query."""
    SCORE = "score"
    GAIN = "gain"
    VOLUME = "volume"


class QueryKind(str, Enum):
    """Kinds of top-N requests served by the query service."""
    EXPLOSION_CANDIDATES = "explosion-candidates"
    TOP_GAINERS = "top-gainers"
    NEW_LISTINGS = "new-listings"
    MARKET_OVERVIEW = "market-overview"
