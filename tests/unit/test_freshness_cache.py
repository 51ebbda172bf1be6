"""Unit tests for the freshness cache and single-flight recomputation."""

import asyncio
from datetime import timedelta

import pytest

from boostiq.cache.freshness import FreshnessCache
from boostiq.core.errors import MalformedInputError, UpstreamTimeoutError, UpstreamUnavailableError

from conftest import FakeClock


class CountingCompute:
    """Async compute function that records invocations."""

    def __init__(self, results=None, error=None, gate=None):
        self.calls = 0
        self.results = results or ["payload"]
        self.error = error
        self.gate = gate

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.results[min(self.calls, len(self.results)) - 1]


class TestGetPut:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = FreshnessCache(ttl=30, clock=self.clock)

    def test_empty_is_miss(self):
        assert self.cache.get("k") == (None, False)

    def test_hit_within_ttl(self):
        self.cache.put("k", [1, 2])
        self.clock.advance(29.9)
        assert self.cache.get("k") == ([1, 2], True)

    def test_miss_at_ttl_boundary(self):
        self.cache.put("k", [1])
        self.clock.advance(30)
        assert self.cache.get("k") == (None, False)
        # Expired entry is still retained
        assert self.cache.peek("k").payload == [1]

    def test_explicit_now(self):
        start = self.clock()
        self.cache.put("k", "v", now=start)
        assert self.cache.get("k", now=start + timedelta(seconds=10)) == ("v", True)
        assert self.cache.get("k", now=start + timedelta(seconds=31)) == (None, False)

    def test_put_overwrites(self):
        self.cache.put("k", "old")
        self.clock.advance(5)
        entry = self.cache.put("k", "new")
        assert self.cache.get("k") == ("new", True)
        assert entry.computed_at == self.clock()

    def test_invalid_ttl(self):
        with pytest.raises(ValueError):
            FreshnessCache(ttl=0)

    def test_lru_bound(self):
        cache = FreshnessCache(ttl=30, clock=self.clock, max_entries=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)
        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2
        assert cache.stats()["evictions"] == 1

    def test_sweep(self):
        self.cache.put("old", 1)
        self.clock.advance(20)
        self.cache.put("young", 2)
        self.clock.advance(15)
        assert self.cache.sweep() == 1
        assert "old" not in self.cache
        assert "young" in self.cache

    def test_sweep_custom_age(self):
        self.cache.put("k", 1)
        self.clock.advance(60)
        assert self.cache.sweep(max_age=timedelta(seconds=120)) == 0
        assert self.cache.sweep(max_age=timedelta(seconds=60)) == 1

    def test_invalidate_and_clear(self):
        self.cache.put("a", 1)
        self.cache.put("b", 2)
        assert self.cache.invalidate("a") is True
        assert self.cache.invalidate("a") is False
        self.cache.clear()
        assert len(self.cache) == 0


class TestGetOrCompute:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = FreshnessCache(ttl=30, clock=self.clock)

    @pytest.mark.asyncio
    async def test_second_call_within_ttl_is_cached(self):
        compute = CountingCompute(results=["first", "second"])

        r1 = await self.cache.get_or_compute("k", compute)
        self.clock.advance(10)
        r2 = await self.cache.get_or_compute("k", compute)

        assert r1.cached is False
        assert r2.cached is True
        assert r1.payload == r2.payload == "first"
        assert r2.computed_at == r1.computed_at
        assert compute.calls == 1

    @pytest.mark.asyncio
    async def test_recompute_after_ttl(self):
        compute = CountingCompute(results=["first", "second"])

        r1 = await self.cache.get_or_compute("k", compute)
        self.clock.advance(31)
        r2 = await self.cache.get_or_compute("k", compute)

        assert compute.calls == 2
        assert r2.cached is False
        assert r2.payload == "second"
        assert r2.computed_at == self.clock()
        assert r2.computed_at > r1.computed_at

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        compute = CountingCompute()
        await self.cache.get_or_compute("a", compute)
        await self.cache.get_or_compute("b", compute)
        assert compute.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_computation(self):
        gate = asyncio.Event()
        compute = CountingCompute(results=["shared"], gate=gate)

        tasks = [asyncio.create_task(self.cache.get_or_compute("k", compute)) for _ in range(5)]
        await asyncio.sleep(0)
        assert self.cache.in_flight("k")
        gate.set()
        results = await asyncio.gather(*tasks)

        assert compute.calls == 1
        assert all(r.payload == "shared" for r in results)
        assert self.cache.stats()["coalesced"] == 4
        assert not self.cache.in_flight("k")

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_failure(self):
        gate = asyncio.Event()
        compute = CountingCompute(error=UpstreamUnavailableError("down"), gate=gate)

        tasks = [asyncio.create_task(self.cache.get_or_compute("k", compute)) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert compute.calls == 1
        assert all(isinstance(r, UpstreamUnavailableError) for r in results)

    @pytest.mark.asyncio
    async def test_failure_without_prior_entry_propagates(self):
        compute = CountingCompute(error=UpstreamTimeoutError("timeout"))
        with pytest.raises(UpstreamTimeoutError):
            await self.cache.get_or_compute("k", compute)
        assert "k" not in self.cache
        assert self.cache.stats()["failures"] == 1

    @pytest.mark.asyncio
    async def test_upstream_failure_serves_stale(self):
        await self.cache.get_or_compute("k", CountingCompute(results=["good"]))
        computed_at = self.cache.peek("k").computed_at
        self.clock.advance(60)

        result = await self.cache.get_or_compute("k", CountingCompute(error=UpstreamUnavailableError("down")))

        assert result.payload == "good"
        assert result.cached is True
        assert result.stale is True
        assert result.computed_at == computed_at
        assert self.cache.stats()["stale_served"] == 1

    @pytest.mark.asyncio
    async def test_failure_does_not_poison_entry(self):
        await self.cache.get_or_compute("k", CountingCompute(results=["good"]))
        self.clock.advance(60)
        await self.cache.get_or_compute("k", CountingCompute(error=UpstreamUnavailableError("down")))

        assert self.cache.peek("k").payload == "good"
        # Still expired, so the next call recomputes
        recovered = await self.cache.get_or_compute("k", CountingCompute(results=["fresh"]))
        assert recovered.payload == "fresh"
        assert recovered.cached is False

    @pytest.mark.asyncio
    async def test_malformed_input_is_not_masked_by_stale(self):
        await self.cache.get_or_compute("k", CountingCompute(results=["good"]))
        self.clock.advance(60)
        with pytest.raises(MalformedInputError):
            await self.cache.get_or_compute("k", CountingCompute(error=MalformedInputError("bad")))
        assert self.cache.peek("k").payload == "good"

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_computation(self):
        gate = asyncio.Event()
        compute = CountingCompute(results=["done"], gate=gate)

        first = asyncio.create_task(self.cache.get_or_compute("k", compute))
        await asyncio.sleep(0)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        second = asyncio.create_task(self.cache.get_or_compute("k", compute))
        await asyncio.sleep(0)
        gate.set()
        result = await second

        assert result.payload == "done"
        assert compute.calls == 1
