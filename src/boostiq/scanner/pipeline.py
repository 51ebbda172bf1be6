"""Filter/rank pipeline turning raw tickers into a scored top-N list."""

import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from ..core.enums import RankBy
from ..core.errors import MalformedInputError
from ..core.models import REQUIRED_TICKER_KEYS, ScoredCandidate, TickerSnapshot, utcnow
from ..scoring.engine import ExplosionScorer, ranking_key
from .models import PipelineStats, QueryProfile

logger = logging.getLogger(__name__)


def ensure_collection(raw_records: Any) -> List[Any]:
    """Return the records as a list, or raise if the payload is not a collection."""
    if not isinstance(raw_records, (list, tuple)):
        raise MalformedInputError(
            f"Expected a list of ticker records, got {type(raw_records).__name__}",
            stage="parse",
        )
    return list(raw_records)


def parse_tickers(
    raw_records: Any,
    quote_currency: str = "USDT",
    blacklist: Iterable[str] = (),
    stats: Optional[PipelineStats] = None,
) -> List[TickerSnapshot]:
    """
    Validate raw records into TickerSnapshots.

    Bad rows are dropped and counted in *stats*; only a payload that is not
    a collection at all raises ``MalformedInputError``.
    """
    records = ensure_collection(raw_records)
    stats = stats if stats is not None else PipelineStats()
    stats.received += len(records)
    blocked = set(blacklist)
    tickers: List[TickerSnapshot] = []

    for record in records:
        if not isinstance(record, dict):
            stats.reject("not_a_mapping")
            continue
        if any(record.get(key) is None for key in REQUIRED_TICKER_KEYS):
            stats.reject("missing_field")
            logger.debug(f"Rejected record without required fields: {record.get('symbol')}")
            continue

        symbol = record['symbol']
        if not isinstance(symbol, str) or not symbol.endswith(quote_currency):
            stats.reject("wrong_quote")
            continue
        if symbol in blocked:
            stats.reject("blacklisted")
            continue

        try:
            tickers.append(TickerSnapshot.from_raw(record))
        except (ValidationError, ValueError, TypeError) as e:
            stats.reject("invalid_number")
            logger.debug(f"Rejected {symbol}: {e}")

    return tickers


def sort_candidates(candidates: List[ScoredCandidate], rank_by: RankBy = RankBy.SCORE) -> List[ScoredCandidate]:
    """Deterministic ordering; ties always fall back to symbol."""
    def key(c: ScoredCandidate) -> Tuple:
        if rank_by == RankBy.GAIN:
            return (-c.price_change_percent, -c.score, c.symbol)
        if rank_by == RankBy.VOLUME:
            return (-c.volume, -c.score, c.symbol)
        return ranking_key(c.score, c.price_change_percent, c.symbol)

    return sorted(candidates, key=key)


class ScanPipeline:
    """
    Validates raw ticker records, applies the profile's predicates,
    scores the survivors and returns the top N.
    """

    def __init__(self, profile: QueryProfile, scorer: Optional[ExplosionScorer] = None):
        self.profile = profile
        self.scorer = scorer or ExplosionScorer()
        self.last_stats = PipelineStats()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, raw_records: Any, now: Optional[datetime] = None) -> List[ScoredCandidate]:
        """Full pipeline run over one upstream snapshot."""
        stats = PipelineStats()
        tickers = parse_tickers(
            raw_records,
            quote_currency=self.profile.quote_currency,
            blacklist=self.profile.blacklist,
            stats=stats,
        )

        survivors = [t for t in tickers if self.passes_filters(t)]
        stats.filtered = len(tickers) - len(survivors)

        timestamp = now or utcnow()
        scored = [self.build_candidate(t, timestamp) for t in survivors]
        stats.ranked = len(scored)

        ranked = sort_candidates(scored, self.profile.rank_by)[:self.profile.top_n]
        stats.returned = len(ranked)
        self.last_stats = stats

        logger.info(
            f"{self.profile.kind.value}: {stats.received} records, {stats.rejected} rejected, "
            f"{stats.filtered} filtered, {stats.returned} returned"
        )
        return ranked

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def passes_filters(self, ticker: TickerSnapshot) -> bool:
        """Conjunction of the profile's exclusive bounds."""
        p = self.profile
        if p.min_volume is not None and not ticker.quote_volume > p.min_volume:
            return False
        if p.max_volume is not None and not ticker.quote_volume < p.max_volume:
            return False
        if p.min_gain is not None and not ticker.price_change_percent > p.min_gain:
            return False
        if p.max_gain is not None and not ticker.price_change_percent < p.max_gain:
            return False
        if p.min_price is not None and not ticker.last_price > p.min_price:
            return False
        if p.max_price is not None and not ticker.last_price < p.max_price:
            return False
        if p.min_trade_count is not None and not ticker.trade_count > p.min_trade_count:
            return False
        return True

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def build_candidate(self, ticker: TickerSnapshot, timestamp: datetime) -> ScoredCandidate:
        breakdown, recommendation = self.scorer.score(ticker)
        return ScoredCandidate(
            symbol=ticker.symbol,
            price=ticker.last_price,
            price_change_percent=ticker.price_change_percent,
            volume=ticker.quote_volume,
            trade_count=ticker.trade_count,
            score=breakdown.total_score,
            breakdown=breakdown,
            recommendation=recommendation,
            is_new=self.profile.mark_new,
            timestamp=timestamp,
        )
