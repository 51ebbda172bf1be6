"""Query service: one cached, configuration-driven pipeline per query kind."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from .analysis.indicators import IndicatorCalculator
from .cache.freshness import FreshnessCache
from .config import build_profiles
from .core.enums import QueryKind
from .core.errors import ScannerError, UpstreamTimeoutError
from .core.models import IndicatorSnapshot, ScoredCandidate
from .data.connector import MarketDataSource, create_source
from .scanner.market_overview import MarketOverviewBuilder
from .scanner.models import QueryProfile
from .scanner.pipeline import ScanPipeline
from .scoring.engine import ExplosionScorer

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Response of one query: payload plus cache provenance."""
    kind: QueryKind
    results: Any
    cached: bool
    computed_at: datetime
    stale: bool = False


def make_cache_key(kind: QueryKind, *params: Any) -> str:
    """Cache key from the query kind and the parameters that shape its result."""
    return ":".join([kind.value] + [str(p) for p in params])


class QueryService:
    """
    Serves top-N queries through the freshness cache.

    On a miss the service fetches the ticker snapshot (bounded by
    ``request_timeout``), runs the kind's pipeline, optionally enriches the
    ranked rows with candle indicators, and stores the result.
    """

    def __init__(
        self,
        source: MarketDataSource,
        cache: FreshnessCache,
        profiles: Optional[Dict[QueryKind, QueryProfile]] = None,
        scorer: Optional[ExplosionScorer] = None,
        indicator_calculator: Optional[IndicatorCalculator] = None,
        overview_builder: Optional[MarketOverviewBuilder] = None,
        request_timeout: float = 10.0,
        enrich_with_candles: bool = False,
        candle_interval: str = '1h',
        candle_limit: int = 50,
        candle_concurrency: int = 5,
        sweep_interval: Optional[float] = None,
        sweep_max_age: Optional[timedelta] = None,
    ):
        self.source = source
        self.cache = cache
        self.scorer = scorer or ExplosionScorer()
        self.profiles = profiles if profiles is not None else build_profiles({})
        self.pipelines = {kind: ScanPipeline(p, self.scorer) for kind, p in self.profiles.items()}
        self.indicators = indicator_calculator or IndicatorCalculator()
        self.overview_builder = overview_builder or MarketOverviewBuilder(self.scorer)
        self.request_timeout = request_timeout
        self.enrich_with_candles = enrich_with_candles
        self.candle_interval = candle_interval
        self.candle_limit = candle_limit
        self.candle_concurrency = max(1, candle_concurrency)
        self.sweep_interval = sweep_interval
        # Keep expired entries around as stale fallbacks for a while
        self.sweep_max_age = sweep_max_age or cache.ttl * 10
        self._sweep_task: Optional[asyncio.Task] = None
        logger.info(f"Query service initialized for kinds: {', '.join(k.value for k in self.profiles)}")

    @classmethod
    def from_config(
        cls,
        config: Dict,
        source: Optional[MarketDataSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "QueryService":
        """Wire a service from a ``load_config()`` dict."""
        source_cfg = config.get('source', {})
        cache_cfg = config.get('cache', {})
        scanner_cfg = config.get('scanner', {})
        scoring_cfg = config.get('scoring', {})

        scorer = ExplosionScorer()
        cache = FreshnessCache(
            ttl=cache_cfg.get('ttl_seconds', 30.0),
            clock=clock,
            max_entries=cache_cfg.get('max_entries'),
        )
        overview = MarketOverviewBuilder(
            scorer,
            quote_currency=scanner_cfg.get('quote_currency', 'USDT'),
            blacklist=scanner_cfg.get('blacklist', []),
        )
        return cls(
            source=source or create_source(source_cfg),
            cache=cache,
            profiles=build_profiles(config),
            scorer=scorer,
            indicator_calculator=IndicatorCalculator(scoring_cfg),
            overview_builder=overview,
            request_timeout=source_cfg.get('request_timeout', 10.0),
            enrich_with_candles=scanner_cfg.get('enrich_with_candles', False),
            candle_interval=scanner_cfg.get('candle_interval', '1h'),
            candle_limit=scanner_cfg.get('candle_limit', 50),
            candle_concurrency=scanner_cfg.get('candle_concurrency', 5),
            sweep_interval=cache_cfg.get('sweep_interval_seconds'),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cache_key(self, kind: QueryKind) -> str:
        if kind == QueryKind.MARKET_OVERVIEW:
            return make_cache_key(kind, self.overview_builder.top_n)
        profile = self.profiles[kind]
        if self.enrich_with_candles:
            return make_cache_key(kind, profile.top_n, self.candle_interval, self.candle_limit)
        return make_cache_key(kind, profile.top_n)

    async def query(self, kind: QueryKind, now: Optional[datetime] = None) -> QueryResult:
        """Serve one kind of query, from cache when fresh."""
        kind = QueryKind(kind)
        if kind != QueryKind.MARKET_OVERVIEW and kind not in self.profiles:
            raise ValueError(f"No profile configured for {kind.value}")

        key = self.cache_key(kind)
        now = now or self.cache.now()

        if kind == QueryKind.MARKET_OVERVIEW:
            compute = partial(self._compute_overview, key, now)
        else:
            compute = partial(self._compute_ranked, kind, key, now)

        result = await self.cache.get_or_compute(key, compute, now=now)
        return QueryResult(
            kind=kind,
            results=result.payload,
            cached=result.cached,
            computed_at=result.computed_at,
            stale=result.stale,
        )

    async def market_overview(self, now: Optional[datetime] = None) -> QueryResult:
        return await self.query(QueryKind.MARKET_OVERVIEW, now)

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    async def _fetch_tickers(self, key: str) -> List[Dict]:
        try:
            return await asyncio.wait_for(self.source.get_tickers(), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Ticker fetch for '{key}' timed out after {self.request_timeout}s")
            raise UpstreamTimeoutError(
                f"Ticker fetch timed out after {self.request_timeout}s", key=key, stage="fetch_tickers"
            ) from e
        except ScannerError as e:
            raise e.with_context(key=key, stage="fetch_tickers")

    async def _compute_ranked(self, kind: QueryKind, key: str, now: datetime) -> List[ScoredCandidate]:
        raw = await self._fetch_tickers(key)
        try:
            ranked = self.pipelines[kind].run(raw, now=now)
        except ScannerError as e:
            raise e.with_context(key=key, stage="pipeline")

        if self.enrich_with_candles and ranked:
            ranked = await self._enrich(ranked)
        return ranked

    async def _compute_overview(self, key: str, now: datetime):
        raw = await self._fetch_tickers(key)
        try:
            return self.overview_builder.build(raw, now=now)
        except ScannerError as e:
            raise e.with_context(key=key, stage="overview")

    async def _enrich(self, candidates: List[ScoredCandidate]) -> List[ScoredCandidate]:
        """Attach candle indicators; results keep the ranked order."""
        semaphore = asyncio.Semaphore(self.candle_concurrency)
        snapshots = await asyncio.gather(
            *(self._candle_indicators(c.symbol, semaphore) for c in candidates)
        )
        return [
            c.model_copy(update={'indicators': snapshot})
            for c, snapshot in zip(candidates, snapshots)
        ]

    async def _candle_indicators(self, symbol: str, semaphore: asyncio.Semaphore) -> Optional[IndicatorSnapshot]:
        async with semaphore:
            try:
                candles = await asyncio.wait_for(
                    self.source.get_candles(symbol, self.candle_interval, self.candle_limit),
                    timeout=self.request_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Candle fetch for {symbol} timed out, skipping indicators")
                return None
            except ScannerError as e:
                logger.warning(f"Candles for {symbol} unavailable, skipping indicators: {e}")
                return None
            except Exception as e:
                logger.warning(f"Candle fetch for {symbol} failed, skipping indicators: {e}")
                return None
        return self.indicators.build_snapshot(candles)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the optional background eviction sweep."""
        if self.sweep_interval and self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"Cache sweep every {self.sweep_interval}s")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.cache.sweep(self.sweep_max_age)
            if removed:
                logger.info(f"Cache sweep removed {removed} entries")

    async def close(self) -> None:
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
        self._sweep_task = None
        await self.source.close()
        logger.info("Query service closed")

    def health(self) -> Dict:
        return {
            'status': 'OK',
            'kinds': [k.value for k in self.profiles] + [QueryKind.MARKET_OVERVIEW.value],
            'cache': self.cache.stats(),
        }
