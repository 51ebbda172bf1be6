"""Market overview: explosion alerts, steady movers and breadth sentiment."""

import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional

from ..core.enums import MarketSentiment, QueryKind, RankBy
from ..core.models import MarketOverview, MarketStats, ScoredCandidate, TickerSnapshot, utcnow
from ..scoring.engine import ExplosionScorer
from .models import PipelineStats
from .pipeline import ScanPipeline, parse_tickers, sort_candidates
from .profiles import base_profile

logger = logging.getLogger(__name__)


class MarketOverviewBuilder:
    """Builds a MarketOverview from one ticker snapshot."""

    def __init__(
        self,
        scorer: Optional[ExplosionScorer] = None,
        quote_currency: str = "USDT",
        blacklist: Iterable[str] = (),
        alert_min_gain: float = 15.0,
        safe_gain_band: tuple = (2.0, 8.0),
        safe_min_volume: float = 10_000_000,
        bullish_above: float = 60.0,
        bearish_below: float = 40.0,
        top_n: int = 3,
    ):
        self.scorer = scorer or ExplosionScorer()
        self.universe = base_profile(QueryKind.MARKET_OVERVIEW, quote_currency, blacklist)
        self.alert_min_gain = alert_min_gain
        self.safe_gain_band = safe_gain_band
        self.safe_min_volume = safe_min_volume
        self.bullish_above = bullish_above
        self.bearish_below = bearish_below
        self.top_n = top_n
        self.last_stats = PipelineStats()

    def build(self, raw_records: Any, now: Optional[datetime] = None) -> MarketOverview:
        timestamp = now or utcnow()
        stats = PipelineStats()
        tickers = parse_tickers(
            raw_records,
            quote_currency=self.universe.quote_currency,
            blacklist=self.universe.blacklist,
            stats=stats,
        )
        universe_filter = ScanPipeline(self.universe, self.scorer)
        universe = [t for t in tickers if universe_filter.passes_filters(t)]
        stats.filtered = len(tickers) - len(universe)
        self.last_stats = stats

        alerts = self._explosion_alerts(universe, timestamp)
        safe = self._safe_investments(universe, timestamp)
        market_stats = self._market_stats(universe)
        sentiment = self._sentiment(market_stats)

        logger.info(
            f"Market overview: {market_stats.total_tokens} tokens, "
            f"{len(alerts)} alerts, {len(safe)} steady, sentiment={sentiment.value}"
        )

        return MarketOverview(
            explosion_alerts=alerts,
            safe_investments=safe,
            market_sentiment=sentiment,
            stats=market_stats,
            timestamp=timestamp,
        )

    def _score_all(self, tickers: List[TickerSnapshot], timestamp: datetime) -> List[ScoredCandidate]:
        pipeline = ScanPipeline(self.universe, self.scorer)
        return [pipeline.build_candidate(t, timestamp) for t in tickers]

    def _explosion_alerts(self, universe: List[TickerSnapshot], timestamp: datetime) -> List[ScoredCandidate]:
        movers = [t for t in universe if t.price_change_percent > self.alert_min_gain]
        ranked = sort_candidates(self._score_all(movers, timestamp), RankBy.SCORE)[:self.top_n]
        return [
            c.model_copy(update={
                "note": f"{c.symbol} up {c.price_change_percent}% with score {c.score:g}/100"
            })
            for c in ranked
        ]

    def _safe_investments(self, universe: List[TickerSnapshot], timestamp: datetime) -> List[ScoredCandidate]:
        low, high = self.safe_gain_band
        steady = [
            t for t in universe
            if low < t.price_change_percent < high and t.quote_volume > self.safe_min_volume
        ]
        ranked = sort_candidates(self._score_all(steady, timestamp), RankBy.VOLUME)[:self.top_n]
        return [
            c.model_copy(update={"note": f"Steady growth of {c.price_change_percent}%"})
            for c in ranked
        ]

    def _market_stats(self, universe: List[TickerSnapshot]) -> MarketStats:
        total = len(universe)
        if total == 0:
            return MarketStats()

        positive = sum(1 for t in universe if t.price_change_percent > 0)
        avg_change = sum(t.price_change_percent for t in universe) / total
        return MarketStats(
            total_tokens=total,
            positive_tokens=positive,
            bullish_percentage=round(positive / total * 100, 1),
            avg_change=round(avg_change, 2),
        )

    def _sentiment(self, stats: MarketStats) -> MarketSentiment:
        if stats.total_tokens == 0:
            return MarketSentiment.NEUTRAL
        bullish = stats.positive_tokens / stats.total_tokens * 100
        if bullish > self.bullish_above:
            return MarketSentiment.BULLISH
        elif bullish < self.bearish_below:
            return MarketSentiment.BEARISH
        return MarketSentiment.NEUTRAL
