"""Report cache administration endpoints."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, Request

from fleetbooks.core.audit import AuditAction, audit_log
from fleetbooks.core.cache import ReportCache, ReportFamily, get_report_cache
from fleetbooks.core.limiter import WRITE_RATE_LIMIT, limiter

logger = structlog.get_logger()

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/stats")
async def report_cache_stats(cache: ReportCache = Depends(get_report_cache)) -> dict[str, Any]:
    """Entry count, hit/miss counters and in-flight computations."""
    return await cache.stats()


@router.post("/clear")
@limiter.limit(WRITE_RATE_LIMIT)
async def clear_report_cache(
    request: Request,
    family: ReportFamily | None = Query(None),
    cache: ReportCache = Depends(get_report_cache),
) -> dict[str, Any]:
    """Invalidate one report family, or every cached report."""
    if family is None:
        deleted = await cache.invalidate_all()
    else:
        deleted = await cache.invalidate(family)

    audit_log(
        action=AuditAction.CACHE_CLEAR,
        resource_type="report_cache",
        resource_id=family.value if family else "all",
        details={"deleted": deleted},
        ip_address=request.client.host if request.client else None,
    )
    return {"cleared": family.value if family else "all", "deleted": deleted}
