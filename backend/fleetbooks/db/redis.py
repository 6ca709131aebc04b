"""Shared Redis client backing the report cache."""

import asyncio
import logging

import redis.asyncio as aioredis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from fleetbooks.core.config import settings

logger = logging.getLogger(__name__)

_client: aioredis.Redis | None = None
_lock = asyncio.Lock()


def _build_client() -> aioredis.Redis:
    # Cache entries are JSON text, so responses are decoded to str
    return aioredis.Redis.from_url(
        str(settings.REDIS_URL),
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_keepalive=True,
        health_check_interval=30,
        retry=Retry(ExponentialBackoff(), retries=3),
        retry_on_error=[aioredis.ConnectionError, aioredis.TimeoutError],
    )


async def get_redis() -> aioredis.Redis:
    """Return the process-wide client, connecting on first use.

    Raises:
        redis.exceptions.ConnectionError: if the first ping fails.
    """
    global _client

    async with _lock:
        if _client is None:
            client = _build_client()
            try:
                await client.ping()
            except Exception:
                logger.exception("Report cache store unreachable at %s", settings.REDIS_HOST)
                await client.aclose()
                raise
            _client = client
            logger.info("Report cache store connected")
    return _client


async def close_redis() -> None:
    """Close the client and its pool; the next get_redis() reconnects."""
    global _client

    async with _lock:
        if _client is None:
            return
        try:
            await _client.aclose()
            logger.info("Report cache store connection closed")
        finally:
            _client = None
