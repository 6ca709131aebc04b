"""Liveness and dependency checks.

Each dependency check answers 503 when the dependency is down so load
balancers can take the instance out of rotation.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.cache import ReportCache, get_report_cache
from fleetbooks.core.config import settings
from fleetbooks.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_database(db: AsyncSession) -> str | None:
    """None when the database answers, else the failure message."""
    try:
        await db.scalar(text("SELECT 1"))
    except Exception as e:
        logger.exception("Database health check failed")
        return str(e)
    return None


async def _check_cache_store(cache: ReportCache) -> str | None:
    try:
        await cache.ping()
    except Exception as e:
        logger.exception("Report cache store health check failed")
        return str(e)
    return None


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Process is up; no dependency is touched."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get("/health/db")
async def health_check_db(response: Response, db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    error = await _check_database(db)
    if error:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "database": error}
    return {"status": "healthy", "database": "connected"}


@router.get("/health/redis")
async def health_check_redis(
    response: Response, cache: ReportCache = Depends(get_report_cache)
) -> dict[str, str]:
    error = await _check_cache_store(cache)
    if error:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "redis": error}
    return {"status": "healthy", "redis": "connected"}


@router.get("/health/ready")
async def readiness_check(
    response: Response,
    db: AsyncSession = Depends(get_db),
    cache: ReportCache = Depends(get_report_cache),
) -> dict[str, Any]:
    """Ready to serve reports: database and cache store both reachable."""
    checks = {
        "database": await _check_database(db) or "connected",
        "redis": await _check_cache_store(cache) or "connected",
    }
    ready = all(value == "connected" for value in checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "ready" if ready else "unavailable", "checks": checks}
