"""Filter/rank pipeline and market overview."""

from .models import QueryProfile, PipelineStats
from .pipeline import ScanPipeline, parse_tickers, sort_candidates
from .profiles import default_profiles
from .market_overview import MarketOverviewBuilder

__all__ = [
    "QueryProfile",
    "PipelineStats",
    "ScanPipeline",
    "parse_tickers",
    "sort_candidates",
    "default_profiles",
    "MarketOverviewBuilder",
]
