"""Investor payout preview and workflow endpoints."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleetbooks.api.params import parse_date_range
from fleetbooks.api.reports import cached_report
from fleetbooks.core.cache import ReportCache, ReportFamily, get_report_cache
from fleetbooks.core.limiter import REPORT_RATE_LIMIT, WRITE_RATE_LIMIT, limiter
from fleetbooks.db.session import get_db, get_session_factory
from fleetbooks.schemas.payouts import PayoutCreate, PayoutResponse, PayoutStatusUpdate
from fleetbooks.schemas.reports import InvestorPayoutPreview
from fleetbooks.services.payout_workflow import (
    create_investor_payout,
    get_investor_payout,
    update_payout_status,
)
from fleetbooks.services.reports.payouts import preview_investor_payout

logger = structlog.get_logger()

router = APIRouter(prefix="/investor-payouts", tags=["investor-payouts"])


@router.get("/preview", response_model=InvestorPayoutPreview)
@limiter.limit(REPORT_RATE_LIMIT)
async def preview_payout(
    request: Request,
    investor_id: int = Query(..., alias="investorId"),
    period_from: str | None = Query(None, alias="periodFrom"),
    period_to: str | None = Query(None, alias="periodTo"),
    branch_id: str | None = Query(None, alias="branchId"),
    commission_percent: float | None = Query(None, alias="commissionPercent", ge=0, le=100),
    cache: ReportCache = Depends(get_report_cache),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    """What an investor would be paid for a period. Nothing is persisted."""
    start, end = parse_date_range(period_from, period_to, "periodFrom", "periodTo")
    params = {
        "investor_id": investor_id,
        "period_from": start,
        "period_to": end,
        "branch_id": branch_id,
        "commission_percent": commission_percent,
    }
    return await cached_report(
        cache, session_factory, ReportFamily.PAYOUTS, params, preview_investor_payout
    )


@router.post("", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_RATE_LIMIT)
async def create_payout(
    request: Request,
    payout_data: PayoutCreate,
    db: AsyncSession = Depends(get_db),
    cache: ReportCache = Depends(get_report_cache),
) -> PayoutResponse:
    """Persist a payout from a fresh preview and book its expense."""
    payout = await create_investor_payout(
        db,
        cache,
        investor_id=payout_data.investor_id,
        period_from=payout_data.period_from,
        period_to=payout_data.period_to,
        branch_id=payout_data.branch_id,
        commission_percent=payout_data.commission_percent,
        notes=payout_data.notes,
        create_payment=payout_data.create_payment,
        payment_method=payout_data.payment_method,
        ip_address=request.client.host if request.client else None,
    )
    return PayoutResponse.model_validate(payout)


@router.get("/{payout_id}", response_model=PayoutResponse)
async def get_payout(payout_id: int, db: AsyncSession = Depends(get_db)) -> PayoutResponse:
    return PayoutResponse.model_validate(await get_investor_payout(db, payout_id))


@router.patch("/{payout_id}", response_model=PayoutResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def change_payout_status(
    request: Request,
    payout_id: int,
    update: PayoutStatusUpdate,
    db: AsyncSession = Depends(get_db),
    cache: ReportCache = Depends(get_report_cache),
) -> PayoutResponse:
    """Move a payout along DRAFT -> PENDING -> PAID, or cancel it."""
    payout = await update_payout_status(
        db,
        cache,
        payout_id,
        update.status,
        notes=update.notes,
        ip_address=request.client.host if request.client else None,
    )
    return PayoutResponse.model_validate(payout)
