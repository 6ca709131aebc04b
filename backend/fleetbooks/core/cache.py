"""Report cache: Redis-backed entries, single-flight computation, family tags."""

import asyncio
import hashlib
import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from redis.exceptions import WatchError

from fleetbooks.core.config import settings
from fleetbooks.core.exceptions import CacheComputeFailure, ReportError
from fleetbooks.db.redis import get_redis

logger = logging.getLogger(__name__)

ComputeFn = Callable[[], Awaitable[Any]]
RedisGetter = Callable[[], Awaitable[Any]]

# Generation counter bumped by every full clear
ALL_GENERATION = "__all__"


class ReportFamily(str, Enum):
    """Groups of cached reports that are invalidated together."""

    REVENUE = "revenue"
    PNL = "pnl"
    AR = "ar"
    INVESTORS = "investors"
    PAYOUTS = "payouts"
    UTILIZATION = "utilization"
    FILTERS = "filters"
    VEHICLE_PERFORMANCE = "vehicle_performance"
    INVESTOR_PERFORMANCE = "investor_performance"


def _normalize(value: Any) -> Any:
    """Canonical JSON-able form of a filter value.

    Numbers compare by value, so ``20``, ``20.0`` and ``Decimal("20.00")``
    normalise identically.
    """
    if isinstance(value, Enum):
        return _normalize(value.value)
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, int | float | Decimal):
        number = Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
        return format(number.normalize(), "f")
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items() if v is not None}
    if isinstance(value, list | tuple | set | frozenset):
        items = [_normalize(v) for v in value]
        return sorted(items, key=str) if isinstance(value, set | frozenset) else items
    return str(value)


def report_fingerprint(family: ReportFamily | str, params: Mapping[str, Any]) -> str:
    """Order-independent cache fingerprint ``{family}:{digest}`` for a report.

    ``None`` filters are dropped so an omitted filter and an explicit null
    collide.
    """
    family = ReportFamily(family).value
    canonical = json.dumps(_normalize(params), sort_keys=True, separators=(",", ":"))
    # MD5 is safe for cache keys, not crypto
    digest = hashlib.md5(canonical.encode()).hexdigest()  # noqa: S324
    return f"{family}:{digest}"


def _family_of(fingerprint: str) -> str:
    return fingerprint.split(":", 1)[0]


@dataclass(eq=False)
class _Flight:
    tags: frozenset[str]
    task: "asyncio.Task[Any] | None" = None
    stale: bool = False
    generation_keys: list[str] = field(default_factory=list)
    generations: list[Any] | None = None


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    # Waiters may all have gone away; retrieve so asyncio doesn't warn.
    if not task.cancelled():
        task.exception()


class ReportCache:
    """Cache for computed report payloads.

    ``get_or_compute`` runs at most one computation per fingerprint at a
    time: concurrent callers share the in-flight task, and a caller that
    stops waiting does not cancel it for the others. Values round-trip
    through JSON so a cached answer is identical to a fresh one.

    Store errors on the read path fall back to computing uncached. A failed
    computation is never stored; its error goes to every waiter, and the
    next call computes again.

    Invalidation is shared between processes through generation counters
    kept next to the entries: a computation records the counters of its
    fingerprint, tags and the full-clear counter before it starts, and its
    result is stored only if none of them moved in the meantime.
    """

    def __init__(
        self,
        redis_getter: RedisGetter = get_redis,
        prefix: str = settings.REPORT_CACHE_PREFIX,
        default_ttl: int = settings.REPORT_CACHE_TTL_SECONDS,
    ) -> None:
        self._redis_getter = redis_getter
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._flights: dict[str, _Flight] = {}
        self._hits = 0
        self._misses = 0

    def _key(self, fingerprint: str) -> str:
        return f"{self._prefix}:{fingerprint}"

    def _tag_key(self, tag: str) -> str:
        return f"{self._prefix}:tag:{tag}"

    def _generation_key(self, name: str) -> str:
        return f"{self._prefix}:gen:{name}"

    def _is_entry_key(self, key: str) -> bool:
        return not key.startswith((f"{self._prefix}:tag:", f"{self._prefix}:gen:"))

    async def get_or_compute(
        self,
        fingerprint: str,
        ttl: int | None,
        compute_fn: ComputeFn,
        tags: Iterable[str] | None = None,
    ) -> Any:
        """Cached value for ``fingerprint``, computing it once if absent.

        ``tags`` default to the fingerprint's report family.
        """
        flight = self._flights.get(fingerprint)
        if flight is None:
            cached = await self._read(fingerprint)
            if cached is not None:
                self._hits += 1
                return cached

            # Another caller may have started the computation while we read
            flight = self._flights.get(fingerprint)
            if flight is None:
                self._misses += 1
                flight = self._start(fingerprint, ttl or self._default_ttl, compute_fn, tags)
        else:
            logger.debug("Joining in-flight report computation: %s", fingerprint)

        return await asyncio.shield(flight.task)

    def _start(
        self,
        fingerprint: str,
        ttl: int,
        compute_fn: ComputeFn,
        tags: Iterable[str] | None,
    ) -> _Flight:
        flight = _Flight(tags=frozenset(tags or (_family_of(fingerprint),)))
        flight.generation_keys = [
            self._generation_key(name)
            for name in (ALL_GENERATION, fingerprint, *sorted(flight.tags))
        ]
        flight.task = asyncio.create_task(self._run(fingerprint, ttl, compute_fn, flight))
        flight.task.add_done_callback(_consume_exception)
        self._flights[fingerprint] = flight
        return flight

    async def _run(
        self, fingerprint: str, ttl: int, compute_fn: ComputeFn, flight: _Flight
    ) -> Any:
        try:
            flight.generations = await self._read_generations(flight.generation_keys)
            try:
                value = await compute_fn()
            except ReportError:
                raise
            except Exception as exc:
                logger.exception("Report computation failed: %s", fingerprint)
                raise CacheComputeFailure(fingerprint) from exc

            serialized = json.dumps(value, default=str)
            if not flight.stale and flight.generations is not None:
                await self._write(fingerprint, serialized, ttl, flight)
                if flight.stale:
                    # Invalidated while the write was in progress
                    await self._discard(fingerprint)
            return json.loads(serialized)
        finally:
            if self._flights.get(fingerprint) is flight:
                del self._flights[fingerprint]

    async def _read(self, fingerprint: str) -> Any | None:
        key = self._key(fingerprint)
        try:
            redis = await self._redis_getter()
            value = await redis.get(key)
        except Exception:
            logger.exception("Error reading report cache key '%s'", key)
            return None

        if value is None:
            logger.debug("Report cache miss: %s", key)
            return None
        logger.debug("Report cache hit: %s", key)
        return json.loads(value)

    async def _read_generations(self, keys: list[str]) -> list[Any] | None:
        """Current generation counters, or None if the store is unreachable."""
        try:
            redis = await self._redis_getter()
            return list(await redis.mget(keys))
        except Exception:
            logger.exception("Error reading report cache generations")
            return None

    async def _write(self, fingerprint: str, serialized: str, ttl: int, flight: _Flight) -> None:
        """Store a result unless an invalidation ran since the flight started.

        The generation check and the write run in one WATCH/MULTI
        transaction, so an invalidation from any process either lands
        before the check or aborts the write.
        """
        key = self._key(fingerprint)
        try:
            redis = await self._redis_getter()
            async with redis.pipeline(transaction=True) as pipe:
                await pipe.watch(*flight.generation_keys)
                current = list(await pipe.mget(flight.generation_keys))
                if current != flight.generations:
                    logger.debug("Report cache write skipped, invalidated: %s", key)
                    return
                pipe.multi()
                pipe.setex(key, ttl, serialized)
                for tag in flight.tags:
                    pipe.sadd(self._tag_key(tag), key)
                    pipe.expire(self._tag_key(tag), ttl)
                await pipe.execute()
            logger.debug("Report cache set: %s (TTL: %ss)", key, ttl)
        except WatchError:
            logger.debug("Report cache write skipped, invalidated during store: %s", key)
        except Exception:
            logger.exception("Error setting report cache key '%s'", key)

    async def _discard(self, fingerprint: str) -> None:
        key = self._key(fingerprint)
        try:
            redis = await self._redis_getter()
            await redis.delete(key)
        except Exception:
            logger.exception("Error discarding report cache key '%s'", key)

    def _mark_stale(self, matches: Callable[[str, _Flight], bool]) -> int:
        marked = 0
        for fingerprint, flight in list(self._flights.items()):
            if matches(fingerprint, flight):
                flight.stale = True
                del self._flights[fingerprint]
                marked += 1
        return marked

    async def invalidate(self, tag_or_fingerprint: ReportFamily | str) -> int:
        """Drop every entry under a tag, or one entry by fingerprint.

        In-flight computations that match, in this process or any other
        sharing the store, still answer their current waiters but are never
        stored; later callers compute afresh. Store errors propagate: a
        write path must not report success while stale entries may remain.

        Returns:
            Number of stored entries deleted
        """
        target = (
            tag_or_fingerprint.value
            if isinstance(tag_or_fingerprint, Enum)
            else str(tag_or_fingerprint)
        )
        stale = self._mark_stale(lambda fp, flight: fp == target or target in flight.tags)

        redis = await self._redis_getter()
        # Bumped before the tag set is read, so no write can slip in between
        await redis.incr(self._generation_key(target))
        tag_key = self._tag_key(target)
        keys = set(await redis.smembers(tag_key))
        keys.add(self._key(target))
        deleted: int = await redis.delete(*keys)
        await redis.delete(tag_key)

        logger.info(
            "Report cache invalidated: %s entries for '%s' (%s in flight)", deleted, target, stale
        )
        return deleted

    async def invalidate_all(self) -> int:
        """Drop every report entry and tag."""
        stale = self._mark_stale(lambda fp, flight: True)

        redis = await self._redis_getter()
        await redis.incr(self._generation_key(ALL_GENERATION))
        keys = [
            key
            async for key in redis.scan_iter(match=f"{self._prefix}:*")
            if not key.startswith(f"{self._prefix}:gen:")
        ]
        deleted = 0
        if keys:
            deleted = await redis.delete(*keys)

        logger.info("Report cache cleared: %s keys (%s in flight)", deleted, stale)
        return deleted

    @property
    def in_flight(self) -> int:
        """Computations currently running in this process."""
        return len(self._flights)

    async def ping(self) -> bool:
        redis = await self._redis_getter()
        return bool(await redis.ping())

    async def stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        stats: dict[str, Any] = {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / max(lookups, 1) * 100, 2),
            "in_flight": self.in_flight,
            "entries": None,
        }
        try:
            redis = await self._redis_getter()
            entries = 0
            async for key in redis.scan_iter(match=f"{self._prefix}:*"):
                if self._is_entry_key(key):
                    entries += 1
            stats["entries"] = entries
        except Exception:
            logger.exception("Error getting report cache stats")
        return stats


report_cache = ReportCache()


def get_report_cache() -> ReportCache:
    """Dependency returning the process-wide report cache."""
    return report_cache
