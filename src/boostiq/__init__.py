"""
BoostIQ market scanner

Scores 24h market tickers for breakout potential, ranks the top movers per
query kind and serves them through a TTL cache that bounds upstream load.
"""

__version__ = "2.0.0"
__author__ = "BoostIQ Team"

from .core.models import TickerSnapshot, ScoreBreakdown, Recommendation, ScoredCandidate
from .core.enums import QueryKind, RecommendationTier, Trend
from .scoring.engine import ExplosionScorer
from .cache.freshness import FreshnessCache
from .service import QueryService, QueryResult

__all__ = [
    "TickerSnapshot",
    "ScoreBreakdown",
    "Recommendation",
    "ScoredCandidate",
    "QueryKind",
    "RecommendationTier",
    "Trend",
    "ExplosionScorer",
    "FreshnessCache",
    "QueryService",
    "QueryResult",
]
