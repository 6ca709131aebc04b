"""Investor performance: fleet revenue, commission and payout history per investor.

Revenue attribution is the payout calculator's, so the figures here always
agree with a payout preview for the same investor and range.
"""

from datetime import date
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.config import settings
from fleetbooks.core.exceptions import UnknownEntityError
from fleetbooks.models import (
    InvestorPayout,
    InvestorProfile,
    OwnershipType,
    Payment,
    PayoutStatus,
    Vehicle,
)
from fleetbooks.schemas.reports import (
    InvestorPerformance,
    InvestorPerformanceReport,
    InvestorPerformanceSummary,
    InvestorVehiclePerformance,
    PayoutHistoryEntry,
)
from fleetbooks.services.reports.money import apply_percent, money_sum, round2, safe_divide
from fleetbooks.services.reports.payouts import (
    resolve_commission_percent,
    split_commission,
    vehicle_contributions,
)
from fleetbooks.services.reports.periods import validate_range

logger = structlog.get_logger()


async def _payout_history(
    db: AsyncSession, date_from: date, date_to: date, investor_id: int | None
) -> list[PayoutHistoryEntry]:
    """Persisted payouts whose period overlaps the range, latest period first."""
    query = (
        select(InvestorPayout, Payment)
        .outerjoin(Payment, InvestorPayout.payment_id == Payment.id)
        .where(InvestorPayout.period_from <= date_to, InvestorPayout.period_to >= date_from)
        .order_by(InvestorPayout.period_from.desc(), InvestorPayout.id.desc())
    )
    if investor_id is not None:
        query = query.where(InvestorPayout.investor_id == investor_id)
    result = await db.execute(query)

    return [
        PayoutHistoryEntry(
            payout_id=payout.id,
            investor_id=payout.investor_id,
            period_from=payout.period_from,
            period_to=payout.period_to,
            total_revenue=round2(payout.total_revenue),
            commission_percent=round2(payout.commission_percent),
            commission_amount=round2(payout.commission_amount),
            net_payout=round2(payout.net_payout),
            status=payout.status,
            payment_status=payment.status if payment else None,
            paid_at=payment.paid_at if payment else None,
            created_at=payout.created_at,
        )
        for payout, payment in result.all()
    ]


def _investor_performance(
    investor: InvestorProfile,
    fleet: list[Vehicle],
    rows: list[InvestorVehiclePerformance],
    commission_percent: Decimal,
    paid_to_date: Decimal,
) -> InvestorPerformance:
    totals = split_commission([row.revenue for row in rows], commission_percent)
    earning = len(rows)
    return InvestorPerformance(
        investor_id=investor.id,
        investor_name=investor.name,
        fleet_size=len(fleet),
        earning_vehicles=earning,
        total_bookings=sum(row.bookings_count for row in rows),
        total_revenue=totals.total_revenue,
        total_commission=totals.commission_amount,
        total_net_payout=totals.net_payout,
        revenue_per_vehicle=round2(safe_divide(totals.total_revenue, earning)),
        commission_per_vehicle=round2(safe_divide(totals.commission_amount, earning)),
        paid_to_date=round2(paid_to_date),
        vehicles=rows,
    )


async def get_investor_performance(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    investor_id: int | None = None,
    branch_id: str | None = None,
    commission_percent: float | Decimal | None = None,
) -> InvestorPerformanceReport:
    """Revenue, commission and payouts for every investor, or just one.

    Investors without activity in the range are listed with zero figures.
    Per-vehicle commission is rounded per row; investor totals are rounded
    once on the total, so vehicle rows may differ from them by a cent.

    Raises:
        InvalidRangeError: if the range is inverted.
        UnknownEntityError: if ``investor_id`` does not exist.
        ValidationFailedError: if the commission is outside 0-100.
    """
    validate_range(date_from, date_to)
    percent = resolve_commission_percent(commission_percent)

    investor_query = select(InvestorProfile).order_by(InvestorProfile.id)
    if investor_id is not None:
        investor_query = investor_query.where(InvestorProfile.id == investor_id)
    investors = list((await db.execute(investor_query)).scalars().all())
    if investor_id is not None and not investors:
        raise UnknownEntityError("Investor", investor_id)

    vehicle_query = (
        select(Vehicle)
        .where(
            Vehicle.investor_id.in_([investor.id for investor in investors]),
            Vehicle.ownership_type == OwnershipType.INVESTOR.value,
        )
        .order_by(Vehicle.id)
    )
    if branch_id:
        vehicle_query = vehicle_query.where(Vehicle.current_branch == branch_id)
    fleets: dict[int, list[Vehicle]] = {investor.id: [] for investor in investors}
    for vehicle in (await db.execute(vehicle_query)).scalars().all():
        fleets[vehicle.investor_id].append(vehicle)

    payouts = await _payout_history(db, date_from, date_to, investor_id)
    paid: dict[int, list[Decimal]] = {investor.id: [] for investor in investors}
    for payout in payouts:
        if payout.status == PayoutStatus.PAID.value and payout.investor_id in paid:
            paid[payout.investor_id].append(payout.net_payout)

    performances = []
    for investor in investors:
        contributions = await vehicle_contributions(db, fleets[investor.id], date_from, date_to)
        rows = [
            InvestorVehiclePerformance(
                vehicle_id=row.vehicle_id,
                plate_number=row.plate_number,
                brand=row.brand,
                model=row.model,
                category=row.category,
                bookings_count=row.bookings_count,
                revenue=row.revenue,
                commission=apply_percent(row.revenue, percent),
                net_payout=row.revenue - apply_percent(row.revenue, percent),
            )
            for row in contributions
        ]
        performances.append(
            _investor_performance(
                investor, fleets[investor.id], rows, percent, money_sum(paid[investor.id])
            )
        )
    performances.sort(key=lambda row: (-row.total_revenue, row.investor_id))

    logger.info(
        "investor_performance_computed",
        date_from=date_from.isoformat(),
        date_to=date_to.isoformat(),
        investors=len(performances),
        payouts=len(payouts),
    )
    return InvestorPerformanceReport(
        currency=settings.DEFAULT_CURRENCY,
        date_from=date_from,
        date_to=date_to,
        branch_id=branch_id,
        commission_percent=percent,
        summary=InvestorPerformanceSummary(
            total_investors=len(performances),
            total_revenue=money_sum(p.total_revenue for p in performances),
            total_commission=money_sum(p.total_commission for p in performances),
            total_net_payout=money_sum(p.total_net_payout for p in performances),
            total_paid_out=money_sum(p.paid_to_date for p in performances),
        ),
        investors=performances,
        payouts=payouts,
    )
