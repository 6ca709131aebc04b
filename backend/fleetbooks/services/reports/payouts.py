"""Investor commission and payout calculation.

A booking belongs to the payout period containing its start date, so
consecutive payout periods never count the same booking twice.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.config import settings
from fleetbooks.core.exceptions import UnknownEntityError, ValidationFailedError
from fleetbooks.models import Booking, InvestorProfile, OwnershipType, Vehicle
from fleetbooks.models.booking import ACTIVE_BOOKING_STATUSES
from fleetbooks.schemas.reports import (
    InvestorPayoutPreview,
    InvestorPayoutReport,
    InvestorPayoutRow,
    InvestorPayoutTotals,
    VehicleContribution,
)
from fleetbooks.services.reports.money import (
    ZERO,
    apply_percent,
    money_sum,
    round2,
    to_decimal,
)
from fleetbooks.services.reports.periods import validate_range
from fleetbooks.services.reports.records import day_after, day_start, load_booking_revenue

logger = structlog.get_logger()


@dataclass(frozen=True)
class PayoutTotals:
    total_revenue: Decimal
    commission_percent: Decimal
    commission_amount: Decimal
    net_payout: Decimal


def resolve_commission_percent(commission_percent: float | Decimal | None) -> Decimal:
    """Caller-supplied commission, else the configured default; must be 0-100."""
    if commission_percent is None:
        commission_percent = settings.DEFAULT_COMMISSION_PERCENT
    percent = to_decimal(commission_percent)
    if not ZERO <= percent <= 100:
        raise ValidationFailedError(
            f"commissionPercent must be between 0 and 100, got {commission_percent}"
        )
    return round2(percent)


def split_commission(revenues: list[Decimal], commission_percent: Decimal) -> PayoutTotals:
    """Commission is rounded once on the total, never per vehicle."""
    total = round2(money_sum(revenues))
    commission = apply_percent(total, commission_percent)
    return PayoutTotals(
        total_revenue=total,
        commission_percent=commission_percent,
        commission_amount=commission,
        net_payout=total - commission,
    )


async def _bookings_by_vehicle(
    db: AsyncSession, vehicle_ids: list[int], period_from: date, period_to: date
) -> dict[int, list[Booking]]:
    if not vehicle_ids:
        return {}
    result = await db.execute(
        select(Booking)
        .where(
            Booking.vehicle_id.in_(vehicle_ids),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_at >= day_start(period_from),
            Booking.start_at < day_after(period_to),
        )
        .order_by(Booking.start_at, Booking.id)
    )
    grouped: dict[int, list[Booking]] = defaultdict(list)
    for booking in result.scalars().all():
        grouped[booking.vehicle_id].append(booking)
    return grouped


async def vehicle_contributions(
    db: AsyncSession, vehicles: list[Vehicle], period_from: date, period_to: date
) -> list[VehicleContribution]:
    """One row per vehicle with bookings in the period, highest revenue first."""
    grouped = await _bookings_by_vehicle(db, [v.id for v in vehicles], period_from, period_to)
    revenue = await load_booking_revenue(
        db, [booking for bookings in grouped.values() for booking in bookings]
    )

    rows = []
    for vehicle in vehicles:
        bookings = grouped.get(vehicle.id)
        if not bookings:
            continue
        rows.append(
            VehicleContribution(
                vehicle_id=vehicle.id,
                plate_number=vehicle.plate_number,
                brand=vehicle.brand,
                model=vehicle.model,
                category=vehicle.category,
                bookings_count=len(bookings),
                revenue=round2(money_sum(revenue[b.id] for b in bookings)),
            )
        )
    rows.sort(key=lambda row: (-row.revenue, row.vehicle_id))
    return rows


async def preview_investor_payout(
    db: AsyncSession,
    investor_id: int,
    period_from: date,
    period_to: date,
    branch_id: str | None = None,
    commission_percent: float | Decimal | None = None,
) -> InvestorPayoutPreview:
    """Compute (without persisting) what an investor is owed for a period.

    An investor with no vehicles or no bookings gets a zero-value preview.

    Raises:
        InvalidRangeError: if the period is inverted.
        UnknownEntityError: if the investor does not exist.
        ValidationFailedError: if the commission is outside 0-100.
    """
    validate_range(period_from, period_to)
    percent = resolve_commission_percent(commission_percent)

    investor = await db.get(InvestorProfile, investor_id)
    if investor is None:
        raise UnknownEntityError("Investor", investor_id)

    query = (
        select(Vehicle)
        .where(
            Vehicle.investor_id == investor_id,
            Vehicle.ownership_type == OwnershipType.INVESTOR.value,
        )
        .order_by(Vehicle.id)
    )
    if branch_id:
        query = query.where(Vehicle.current_branch == branch_id)
    vehicles = list((await db.execute(query)).scalars().all())

    breakdown = await vehicle_contributions(db, vehicles, period_from, period_to)
    totals = split_commission([row.revenue for row in breakdown], percent)

    logger.info(
        "investor_payout_previewed",
        investor_id=investor_id,
        vehicles=len(vehicles),
        total_revenue=str(totals.total_revenue),
    )
    return InvestorPayoutPreview(
        investor_id=investor.id,
        investor_name=investor.name,
        period_from=period_from,
        period_to=period_to,
        branch_id=branch_id,
        currency=settings.DEFAULT_CURRENCY,
        total_revenue=totals.total_revenue,
        commission_percent=totals.commission_percent,
        commission_amount=totals.commission_amount,
        net_payout=totals.net_payout,
        breakdown=breakdown,
    )


async def get_investor_payout_report(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    commission_percent: float | Decimal | None = None,
) -> InvestorPayoutReport:
    """Payout rows for every investor with bookings in the range."""
    validate_range(date_from, date_to)
    percent = resolve_commission_percent(commission_percent)

    result = await db.execute(
        select(Vehicle, InvestorProfile)
        .join(InvestorProfile, Vehicle.investor_id == InvestorProfile.id)
        .where(Vehicle.ownership_type == OwnershipType.INVESTOR.value)
        .order_by(InvestorProfile.id, Vehicle.id)
    )
    fleets: dict[int, tuple[InvestorProfile, list[Vehicle]]] = {}
    for vehicle, investor in result.all():
        fleets.setdefault(investor.id, (investor, []))[1].append(vehicle)

    rows = []
    for investor, vehicles in fleets.values():
        breakdown = await vehicle_contributions(db, vehicles, date_from, date_to)
        if not breakdown:
            continue
        totals = split_commission([row.revenue for row in breakdown], percent)
        rows.append(
            InvestorPayoutRow(
                investor_id=investor.id,
                investor_name=investor.name,
                revenue=totals.total_revenue,
                commission_percent=percent,
                commission=totals.commission_amount,
                net_amount=totals.net_payout,
                bookings=sum(row.bookings_count for row in breakdown),
            )
        )
    rows.sort(key=lambda row: (-row.revenue, row.investor_id))

    return InvestorPayoutReport(
        currency=settings.DEFAULT_CURRENCY,
        date_from=date_from,
        date_to=date_to,
        commission_percent=percent,
        investors=rows,
        summary=InvestorPayoutTotals(
            total_revenue=money_sum(row.revenue for row in rows),
            total_commission=money_sum(row.commission for row in rows),
            total_payout=money_sum(row.net_amount for row in rows),
            investor_count=len(rows),
        ),
    )
