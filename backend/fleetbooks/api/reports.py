"""Financial report endpoints.

All report endpoints are read-only and idempotent. Results are cached per
canonical filter fingerprint and invalidated by the write paths.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleetbooks.api.params import parse_date_range, parse_iso_date
from fleetbooks.core.cache import ReportCache, ReportFamily, get_report_cache, report_fingerprint
from fleetbooks.core.config import settings
from fleetbooks.core.limiter import REPORT_RATE_LIMIT, limiter
from fleetbooks.db.session import get_session_factory
from fleetbooks.models import CustomerType
from fleetbooks.schemas.reports import (
    FilterOptions,
    InvestorPayoutReport,
    InvestorPerformanceReport,
    ProfitAndLossReport,
    ReceivablesReport,
    RevenueReport,
    UtilizationReport,
    VehiclePerformanceReport,
)
from fleetbooks.services.reports.filters import get_filter_options
from fleetbooks.services.reports.investor_performance import get_investor_performance
from fleetbooks.services.reports.payouts import get_investor_payout_report
from fleetbooks.services.reports.periods import Granularity
from fleetbooks.services.reports.pnl import ComparisonMode, PeriodType, get_profit_and_loss
from fleetbooks.services.reports.receivables import get_receivables_aging
from fleetbooks.services.reports.revenue import RevenueDimension, get_revenue_report
from fleetbooks.services.reports.utilization import get_utilization_report
from fleetbooks.services.reports.vehicle_performance import get_vehicle_performance

logger = structlog.get_logger()

router = APIRouter(prefix="/reports", tags=["reports"])

Calculator = Callable[..., Awaitable[BaseModel]]


async def cached_report(
    cache: ReportCache,
    session_factory: async_sessionmaker[AsyncSession],
    family: ReportFamily,
    params: dict[str, Any],
    calculator: Calculator,
) -> dict[str, Any]:
    """Serve a report from the cache, computing it on a miss.

    The computation may be shared with concurrent requests, so it runs in
    its own session rather than the caller's.
    """
    fingerprint = report_fingerprint(family, params)

    async def compute() -> dict[str, Any]:
        async with session_factory() as session:
            report = await calculator(session, **params)
        return report.model_dump(mode="json")

    return await cache.get_or_compute(fingerprint, settings.REPORT_CACHE_TTL_SECONDS, compute)


@router.get("/revenue", response_model=RevenueReport)
@limiter.limit(REPORT_RATE_LIMIT)
async def revenue_report(
    request: Request,
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
    group_by: Granularity = Query(Granularity.DAY, alias="groupBy"),
    dimension: RevenueDimension = Query(RevenueDimension.BRANCH),
    branch_id: str | None = Query(None, alias="branchId"),
    vehicle_category: str | None = Query(None, alias="vehicleCategory"),
    customer_type: CustomerType | None = Query(None, alias="customerType"),
    cache: ReportCache = Depends(get_report_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Revenue summary, per-bucket series and grouped breakdown."""
    start, end = parse_date_range(date_from, date_to)
    params = {
        "date_from": start,
        "date_to": end,
        "granularity": group_by,
        "dimension": dimension,
        "branch_id": branch_id,
        "vehicle_category": vehicle_category,
        "customer_type": customer_type.value if customer_type else None,
    }
    return await cached_report(
        cache, session_factory, ReportFamily.REVENUE, params, get_revenue_report
    )


@router.get("/pnl", response_model=ProfitAndLossReport)
@limiter.limit(REPORT_RATE_LIMIT)
async def profit_and_loss_report(
    request: Request,
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
    period_type: PeriodType = Query(PeriodType.MONTH, alias="periodType"),
    branch_id: str | None = Query(None, alias="branchId"),
    compare_with: ComparisonMode = Query(ComparisonMode.NONE, alias="compareWith"),
    cache: ReportCache = Depends(get_report_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Profit and loss statement, optionally compared with an earlier window."""
    start, end = parse_date_range(date_from, date_to)
    params = {
        "date_from": start,
        "date_to": end,
        "period_type": period_type,
        "branch_id": branch_id,
        "compare_with": compare_with,
    }
    return await cached_report(cache, session_factory, ReportFamily.PNL, params, get_profit_and_loss)


@router.get("/ar", response_model=ReceivablesReport)
@limiter.limit(REPORT_RATE_LIMIT)
async def receivables_report(
    request: Request,
    date_as_of: str | None = Query(None, alias="dateAsOf"),
    branch_id: str | None = Query(None, alias="branchId"),
    cache: ReportCache = Depends(get_report_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Accounts-receivable aging as of a date."""
    params = {"as_of": parse_iso_date(date_as_of, "dateAsOf"), "branch_id": branch_id}
    return await cached_report(cache, session_factory, ReportFamily.AR, params, get_receivables_aging)


@router.get("/investors", response_model=InvestorPayoutReport)
@limiter.limit(REPORT_RATE_LIMIT)
async def investor_payouts_report(
    request: Request,
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
    commission_percent: float | None = Query(None, alias="commissionPercent", ge=0, le=100),
    cache: ReportCache = Depends(get_report_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Payout summary for every investor with bookings in the range."""
    start, end = parse_date_range(date_from, date_to)
    params = {
        "date_from": start,
        "date_to": end,
        "commission_percent": (
            commission_percent
            if commission_percent is not None
            else settings.DEFAULT_COMMISSION_PERCENT
        ),
    }
    return await cached_report(
        cache, session_factory, ReportFamily.INVESTORS, params, get_investor_payout_report
    )


@router.get("/investors/performance", response_model=InvestorPerformanceReport)
@limiter.limit(REPORT_RATE_LIMIT)
async def investor_performance_report(
    request: Request,
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
    investor_id: int | None = Query(None, alias="investorId"),
    branch_id: str | None = Query(None, alias="branchId"),
    commission_percent: float | None = Query(None, alias="commissionPercent", ge=0, le=100),
    cache: ReportCache = Depends(get_report_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Revenue, commission and payout history per investor."""
    start, end = parse_date_range(date_from, date_to)
    params = {
        "date_from": start,
        "date_to": end,
        "investor_id": investor_id,
        "branch_id": branch_id,
        "commission_percent": (
            commission_percent
            if commission_percent is not None
            else settings.DEFAULT_COMMISSION_PERCENT
        ),
    }
    return await cached_report(
        cache, session_factory, ReportFamily.INVESTOR_PERFORMANCE, params, get_investor_performance
    )

@router.get("/utilization", response_model=UtilizationReport)
@limiter.limit(REPORT_RATE_LIMIT)
async def utilization_report(
    request: Request,
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
    branch_id: str | None = Query(None, alias="branchId"),
    vehicle_category: str | None = Query(None, alias="vehicleCategory"),
    cache: ReportCache = Depends(get_report_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    start, end = parse_date_range(date_from, date_to)
    params = {
        "date_from": start,
        "date_to": end,
        "branch_id": branch_id,
        "vehicle_category": vehicle_category,
    }
    return await cached_report(
        cache, session_factory, ReportFamily.UTILIZATION, params, get_utilization_report
    )


@router.get("/filter-options", response_model=FilterOptions)
@limiter.limit(REPORT_RATE_LIMIT)
async def filter_options(
    request: Request,
    cache: ReportCache = Depends(get_report_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Distinct branches and vehicle categories for the report pickers."""
    return await cached_report(cache, session_factory, ReportFamily.FILTERS, {}, get_filter_options)


@router.get("/vehicle-performance", response_model=VehiclePerformanceReport)
@limiter.limit(REPORT_RATE_LIMIT)
async def vehicle_performance_report(
    request: Request,
    vehicle_id: int = Query(..., alias="vehicleId"),
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
    group_by: Granularity = Query(Granularity.MONTH, alias="groupBy"),
    cache: ReportCache = Depends(get_report_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Revenue, utilization and break-even for one vehicle."""
    start, end = parse_date_range(date_from, date_to)
    params = {
        "vehicle_id": vehicle_id,
        "date_from": start,
        "date_to": end,
        "granularity": group_by,
    }
    return await cached_report(
        cache, session_factory, ReportFamily.VEHICLE_PERFORMANCE, params, get_vehicle_performance
    )
