"""TTL-bounded response cache with single-flight recomputation."""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, Union

from ..core.errors import UpstreamUnavailableError
from ..core.models import utcnow

logger = logging.getLogger(__name__)

ComputeFn = Callable[[], Awaitable[Any]]


@dataclass
class CacheEntry:
    """A cached payload and the time it was computed."""
    key: str
    payload: Any
    computed_at: datetime


@dataclass
class CacheResult:
    """Outcome of ``get_or_compute``."""
    payload: Any
    cached: bool
    computed_at: datetime
    stale: bool = False


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    computations: int = 0
    failures: int = 0
    stale_served: int = 0
    evictions: int = 0


class FreshnessCache:
    """
    Maps a query key to its last computed payload.

    A lookup is a hit while ``now - computed_at < ttl``. On a miss, the
    first caller starts one computation per key and every concurrent caller
    for that key awaits the same task. Failed computations never replace
    an entry; for upstream failures the previous (stale) payload is served
    when one exists.
    """

    def __init__(
        self,
        ttl: Union[float, timedelta],
        clock: Optional[Callable[[], datetime]] = None,
        max_entries: Optional[int] = None,
        fallback_errors: Tuple[Type[BaseException], ...] = (UpstreamUnavailableError,),
    ):
        self.ttl = ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)
        if self.ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.max_entries = max_entries
        self.fallback_errors = fallback_errors
        self._clock = clock or utcnow
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._inflight: Dict[str, asyncio.Task] = {}
        self._stats = CacheStats()
        logger.info(f"Freshness cache initialized (ttl={self.ttl.total_seconds():g}s, max_entries={max_entries})")

    # ------------------------------------------------------------------
    # Synchronous access
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def is_fresh(self, entry: CacheEntry, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        return now - entry.computed_at < self.ttl

    def get(self, key: str, now: Optional[datetime] = None) -> Tuple[Optional[Any], bool]:
        """Return ``(payload, hit)``; payload is None on a miss."""
        entry = self._entries.get(key)
        if entry is None or not self.is_fresh(entry, now):
            return None, False
        self._entries.move_to_end(key)
        return entry.payload, True

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the entry regardless of its age."""
        return self._entries.get(key)

    def put(self, key: str, payload: Any, now: Optional[datetime] = None) -> CacheEntry:
        """Unconditionally replace the entry for *key*."""
        entry = CacheEntry(key=key, payload=payload, computed_at=now or self._clock())
        self._entries[key] = entry
        self._entries.move_to_end(key)

        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._stats.evictions += 1
                logger.debug(f"Evicted least recently used entry '{evicted}'")
        return entry

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self, max_age: Optional[timedelta] = None, now: Optional[datetime] = None) -> int:
        """Drop entries older than *max_age* (default: the TTL)."""
        max_age = max_age or self.ttl
        now = now or self._clock()
        expired = [k for k, e in self._entries.items() if now - e.computed_at >= max_age]
        for key in expired:
            del self._entries[key]
        self._stats.evictions += len(expired)
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    # ------------------------------------------------------------------
    # Single-flight recomputation
    # ------------------------------------------------------------------

    async def get_or_compute(
        self,
        key: str,
        compute_fn: ComputeFn,
        now: Optional[datetime] = None,
    ) -> CacheResult:
        """Serve a fresh entry, or join/start the one computation for *key*."""
        now = now or self._clock()

        entry = self._entries.get(key)
        if entry is not None and self.is_fresh(entry, now):
            self._entries.move_to_end(key)
            self._stats.hits += 1
            logger.debug(f"Cache hit for '{key}'")
            return CacheResult(payload=entry.payload, cached=True, computed_at=entry.computed_at)

        self._stats.misses += 1
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute(key, compute_fn, now))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._on_compute_done(key, t))
        else:
            self._stats.coalesced += 1
            logger.debug(f"Joining in-flight computation for '{key}'")

        try:
            entry = await asyncio.shield(task)
        except self.fallback_errors as e:
            stale = self._entries.get(key)
            if stale is None:
                raise
            self._stats.stale_served += 1
            logger.warning(
                f"Serving stale '{key}' computed at {stale.computed_at.isoformat()} after upstream failure: {e}"
            )
            return CacheResult(payload=stale.payload, cached=True, computed_at=stale.computed_at, stale=True)

        return CacheResult(payload=entry.payload, cached=False, computed_at=entry.computed_at)

    async def _compute(self, key: str, compute_fn: ComputeFn, now: datetime) -> CacheEntry:
        self._stats.computations += 1
        try:
            payload = await compute_fn()
        except Exception as e:
            self._stats.failures += 1
            logger.error(f"Computation for '{key}' failed: {e}")
            raise
        return self.put(key, payload, now)

    def _on_compute_done(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def stats(self) -> Dict[str, int]:
        s = self._stats
        return {
            "entries": len(self._entries),
            "in_flight": len(self._inflight),
            "hits": s.hits,
            "misses": s.misses,
            "coalesced": s.coalesced,
            "computations": s.computations,
            "failures": s.failures,
            "stale_served": s.stale_served,
            "evictions": s.evictions,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
