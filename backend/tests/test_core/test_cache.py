"""Tests for the report cache."""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from fleetbooks.core.cache import ReportCache, ReportFamily, report_fingerprint
from fleetbooks.core.exceptions import CacheComputeFailure, InvalidRangeError


class CountingCompute:
    """Compute function that records how often it ran."""

    def __init__(self, value: Any = None, delay: float = 0) -> None:
        self.calls = 0
        self.value = value if value is not None else {"total": 1}
        self.delay = delay

    async def __call__(self) -> Any:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.value


class TestReportFingerprint:
    """Canonical fingerprints for report filters."""

    def test_key_order_does_not_matter(self) -> None:
        a = report_fingerprint("revenue", {"date_from": date(2024, 1, 1), "branch_id": "DXB"})
        b = report_fingerprint("revenue", {"branch_id": "DXB", "date_from": date(2024, 1, 1)})
        assert a == b

    def test_fingerprint_is_prefixed_with_family(self) -> None:
        fingerprint = report_fingerprint(ReportFamily.PNL, {"date_from": date(2024, 1, 1)})
        assert fingerprint.startswith("pnl:")

    def test_none_filters_are_dropped(self) -> None:
        assert report_fingerprint("ar", {"as_of": "2024-06-30", "branch_id": None}) == (
            report_fingerprint("ar", {"as_of": "2024-06-30"})
        )

    def test_equal_numbers_collide(self) -> None:
        as_int = report_fingerprint("investors", {"commission_percent": 20})
        as_float = report_fingerprint("investors", {"commission_percent": 20.0})
        as_decimal = report_fingerprint("investors", {"commission_percent": Decimal("20.00")})
        assert as_int == as_float == as_decimal

    def test_different_filters_differ(self) -> None:
        assert report_fingerprint("revenue", {"branch_id": "DXB"}) != report_fingerprint(
            "revenue", {"branch_id": "AUH"}
        )

    def test_unknown_family_rejected(self) -> None:
        with pytest.raises(ValueError):
            report_fingerprint("nope", {})


class TestGetOrCompute:
    """Cache hits, misses and failures."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, report_cache: ReportCache) -> None:
        compute = CountingCompute({"net": 900.0})

        first = await report_cache.get_or_compute("revenue:abc", 60, compute)
        second = await report_cache.get_or_compute("revenue:abc", 60, compute)

        assert first == second == {"net": 900.0}
        assert compute.calls == 1

    @pytest.mark.asyncio
    async def test_value_stored_with_ttl(self, report_cache: ReportCache, test_redis: Any) -> None:
        await report_cache.get_or_compute("revenue:abc", 60, CountingCompute())

        ttl = await test_redis.ttl("test-report:revenue:abc")
        assert 0 < ttl <= 60
        assert await test_redis.sismember("test-report:tag:revenue", "test-report:revenue:abc")

    @pytest.mark.asyncio
    async def test_fresh_and_cached_values_identical(self, report_cache: ReportCache) -> None:
        compute = CountingCompute({"day": date(2024, 1, 1), "amount": 1.5})

        fresh = await report_cache.get_or_compute("revenue:abc", 60, compute)
        cached = await report_cache.get_or_compute("revenue:abc", 60, compute)

        assert fresh == cached == {"day": "2024-01-01", "amount": 1.5}

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_computation(
        self, report_cache: ReportCache
    ) -> None:
        compute = CountingCompute({"net": 1}, delay=0.05)

        results = await asyncio.gather(
            *(report_cache.get_or_compute("pnl:same", 60, compute) for _ in range(10))
        )

        assert compute.calls == 1
        assert all(result == {"net": 1} for result in results)

    @pytest.mark.asyncio
    async def test_different_fingerprints_compute_independently(
        self, report_cache: ReportCache
    ) -> None:
        compute = CountingCompute(delay=0.01)

        await asyncio.gather(
            report_cache.get_or_compute("pnl:one", 60, compute),
            report_cache.get_or_compute("pnl:two", 60, compute),
        )

        assert compute.calls == 2

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter_and_is_not_cached(
        self, report_cache: ReportCache, test_redis: Any
    ) -> None:
        calls = 0

        async def failing() -> Any:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            raise RuntimeError("database went away")

        results = await asyncio.gather(
            *(report_cache.get_or_compute("ar:x", 60, failing) for _ in range(3)),
            return_exceptions=True,
        )

        assert calls == 1
        assert all(isinstance(r, CacheComputeFailure) for r in results)
        assert await test_redis.get("test-report:ar:x") is None

        # Next call retries rather than replaying the failure
        value = await report_cache.get_or_compute("ar:x", 60, CountingCompute({"ok": True}))
        assert value == {"ok": True}

    @pytest.mark.asyncio
    async def test_domain_errors_propagate_unchanged(self, report_cache: ReportCache) -> None:
        async def invalid() -> Any:
            raise InvalidRangeError("dateTo is before dateFrom")

        with pytest.raises(InvalidRangeError):
            await report_cache.get_or_compute("revenue:bad", 60, invalid)

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_computation(
        self, report_cache: ReportCache
    ) -> None:
        compute = CountingCompute({"net": 5}, delay=0.05)

        impatient = asyncio.create_task(report_cache.get_or_compute("pnl:slow", 60, compute))
        await asyncio.sleep(0.01)
        patient = asyncio.create_task(report_cache.get_or_compute("pnl:slow", 60, compute))
        await asyncio.sleep(0)
        impatient.cancel()

        assert await patient == {"net": 5}
        assert compute.calls == 1
        with pytest.raises(asyncio.CancelledError):
            await impatient

    @pytest.mark.asyncio
    async def test_store_read_error_falls_back_to_compute(self) -> None:
        broken = MagicMock()
        broken.get = AsyncMock(side_effect=ConnectionError("redis down"))
        broken.pipeline.side_effect = ConnectionError("redis down")

        async def get_broken() -> Any:
            return broken

        cache = ReportCache(redis_getter=get_broken, prefix="test-report")
        compute = CountingCompute({"net": 1})

        assert await cache.get_or_compute("revenue:abc", 60, compute) == {"net": 1}
        assert compute.calls == 1


class TestInvalidation:
    """Tag and fingerprint invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_family_drops_all_entries(
        self, report_cache: ReportCache, test_redis: Any
    ) -> None:
        await report_cache.get_or_compute("revenue:a", 60, CountingCompute())
        await report_cache.get_or_compute("revenue:b", 60, CountingCompute())
        await report_cache.get_or_compute("ar:c", 60, CountingCompute())

        deleted = await report_cache.invalidate(ReportFamily.REVENUE)

        assert deleted == 2
        assert await test_redis.get("test-report:revenue:a") is None
        assert await test_redis.get("test-report:revenue:b") is None
        assert await test_redis.get("test-report:ar:c") is not None

    @pytest.mark.asyncio
    async def test_invalidate_single_fingerprint(
        self, report_cache: ReportCache, test_redis: Any
    ) -> None:
        await report_cache.get_or_compute("revenue:a", 60, CountingCompute())
        await report_cache.get_or_compute("revenue:b", 60, CountingCompute())

        assert await report_cache.invalidate("revenue:a") == 1
        assert await test_redis.get("test-report:revenue:b") is not None

    @pytest.mark.asyncio
    async def test_recompute_after_invalidate(self, report_cache: ReportCache) -> None:
        before = CountingCompute({"version": 1})
        after = CountingCompute({"version": 2})

        await report_cache.get_or_compute("pnl:x", 60, before)
        await report_cache.invalidate(ReportFamily.PNL)

        assert await report_cache.get_or_compute("pnl:x", 60, after) == {"version": 2}

    @pytest.mark.asyncio
    async def test_in_flight_result_is_not_stored_after_invalidation(
        self, report_cache: ReportCache, test_redis: Any
    ) -> None:
        stale = CountingCompute({"version": 1}, delay=0.05)

        waiter = asyncio.create_task(report_cache.get_or_compute("pnl:x", 60, stale))
        await asyncio.sleep(0.01)
        await report_cache.invalidate(ReportFamily.PNL)

        # The original waiter still gets its answer
        assert await waiter == {"version": 1}
        assert await test_redis.get("test-report:pnl:x") is None

        fresh = CountingCompute({"version": 2})
        assert await report_cache.get_or_compute("pnl:x", 60, fresh) == {"version": 2}
        assert fresh.calls == 1

    @pytest.mark.asyncio
    async def test_caller_after_invalidation_does_not_join_stale_flight(
        self, report_cache: ReportCache
    ) -> None:
        stale = CountingCompute({"version": 1}, delay=0.05)
        fresh = CountingCompute({"version": 2}, delay=0.01)

        waiter = asyncio.create_task(report_cache.get_or_compute("pnl:x", 60, stale))
        await asyncio.sleep(0.01)
        await report_cache.invalidate(ReportFamily.PNL)

        assert await report_cache.get_or_compute("pnl:x", 60, fresh) == {"version": 2}
        await waiter

    @pytest.mark.asyncio
    async def test_invalidate_all(self, report_cache: ReportCache, test_redis: Any) -> None:
        await report_cache.get_or_compute("revenue:a", 60, CountingCompute())
        await report_cache.get_or_compute("ar:b", 60, CountingCompute())

        await report_cache.invalidate_all()

        remaining = [key async for key in test_redis.scan_iter(match="test-report:*")]
        assert remaining == ["test-report:gen:__all__"]

    @pytest.mark.asyncio
    async def test_invalidate_propagates_store_errors(self) -> None:
        broken = MagicMock()
        broken.incr = AsyncMock(side_effect=ConnectionError("redis down"))

        async def get_broken() -> Any:
            return broken

        cache = ReportCache(redis_getter=get_broken, prefix="test-report")
        with pytest.raises(ConnectionError):
            await cache.invalidate(ReportFamily.AR)


class TestSharedStore:
    """Several processes sharing one store, each with its own ReportCache."""

    @staticmethod
    def worker_cache(test_redis: Any) -> ReportCache:
        async def _get_redis() -> Any:
            return test_redis

        return ReportCache(redis_getter=_get_redis, prefix="test-report", default_ttl=60)

    @pytest.mark.asyncio
    async def test_invalidation_elsewhere_blocks_stale_write(self, test_redis: Any) -> None:
        writer = self.worker_cache(test_redis)
        reader = self.worker_cache(test_redis)
        stale = CountingCompute({"version": "pre-write"}, delay=0.05)

        in_flight = asyncio.create_task(reader.get_or_compute("pnl:x", 60, stale))
        await asyncio.sleep(0.01)
        await writer.invalidate(ReportFamily.PNL)

        assert await in_flight == {"version": "pre-write"}
        assert await test_redis.get("test-report:pnl:x") is None

        fresh = CountingCompute({"version": "post-write"})
        assert await writer.get_or_compute("pnl:x", 60, fresh) == {"version": "post-write"}
        assert await reader.get_or_compute("pnl:x", 60, stale) == {"version": "post-write"}
        assert stale.calls == 1

    @pytest.mark.asyncio
    async def test_clear_all_elsewhere_blocks_stale_write(self, test_redis: Any) -> None:
        writer = self.worker_cache(test_redis)
        reader = self.worker_cache(test_redis)

        in_flight = asyncio.create_task(
            reader.get_or_compute("ar:x", 60, CountingCompute({"v": 1}, delay=0.05))
        )
        await asyncio.sleep(0.01)
        await writer.invalidate_all()
        await in_flight

        assert await test_redis.get("test-report:ar:x") is None

    @pytest.mark.asyncio
    async def test_unrelated_family_still_stored(self, test_redis: Any) -> None:
        writer = self.worker_cache(test_redis)
        reader = self.worker_cache(test_redis)

        in_flight = asyncio.create_task(
            reader.get_or_compute("revenue:x", 60, CountingCompute({"v": 1}, delay=0.05))
        )
        await asyncio.sleep(0.01)
        await writer.invalidate(ReportFamily.AR)
        await in_flight

        assert await test_redis.get("test-report:revenue:x") is not None

    @pytest.mark.asyncio
    async def test_computation_started_after_invalidation_is_stored(
        self, test_redis: Any
    ) -> None:
        writer = self.worker_cache(test_redis)
        reader = self.worker_cache(test_redis)

        await writer.invalidate(ReportFamily.PNL)
        await reader.get_or_compute("pnl:x", 60, CountingCompute({"v": 2}))

        assert await test_redis.get("test-report:pnl:x") is not None


class TestCacheStats:
    @pytest.mark.asyncio
    async def test_stats_count_hits_and_misses(self, report_cache: ReportCache) -> None:
        compute = CountingCompute()
        await report_cache.get_or_compute("revenue:a", 60, compute)
        await report_cache.get_or_compute("revenue:a", 60, compute)

        stats = await report_cache.stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 50.0
        assert stats["entries"] == 1
        assert stats["in_flight"] == 0
