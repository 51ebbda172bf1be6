"""Models for the filter/rank pipeline."""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..core.enums import QueryKind, RankBy


@dataclass(frozen=True)
class QueryProfile:
    """Threshold set and ranking rules for one kind of top-N query.

    Bounds are exclusive; ``None`` disables the predicate.
    """

    kind: QueryKind
    quote_currency: str = "USDT"
    blacklist: Tuple[str, ...] = ()
    min_volume: Optional[float] = None
    max_volume: Optional[float] = None
    min_gain: Optional[float] = None
    max_gain: Optional[float] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_trade_count: Optional[float] = None
    rank_by: RankBy = RankBy.SCORE
    top_n: int = 5
    mark_new: bool = False


@dataclass
class PipelineStats:
    """Counters for the last pipeline run."""
    received: int = 0
    rejected: int = 0
    filtered: int = 0
    ranked: int = 0
    returned: int = 0
    reject_reasons: dict = field(default_factory=dict)

    def reject(self, reason: str) -> None:
        self.rejected += 1
        self.reject_reasons[reason] = self.reject_reasons.get(reason, 0) + 1
