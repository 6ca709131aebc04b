"""Fleet utilization: rented days over available days, per vehicle and category."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.config import settings
from fleetbooks.models import Booking, BookingStatus, Vehicle
from fleetbooks.schemas.reports import CategoryUtilization, UtilizationReport, UtilizationRow
from fleetbooks.services.reports.money import (
    money_sum,
    percent_of,
    round2,
    safe_divide,
)
from fleetbooks.services.reports.periods import validate_range
from fleetbooks.services.reports.records import (
    as_date,
    day_after,
    day_start,
    load_booking_revenue,
)

logger = structlog.get_logger()


def available_window(vehicle: Vehicle, date_from: date, date_to: date) -> tuple[date, date] | None:
    """The part of the range the vehicle was in the fleet, or None."""
    start = max(date_from, vehicle.acquired_on) if vehicle.acquired_on else date_from
    end = min(date_to, vehicle.retired_on) if vehicle.retired_on else date_to
    if end < start:
        return None
    return start, end


def rented_days(bookings: Iterable[Booking], window_start: date, window_end: date) -> set[date]:
    """Calendar days inside the window covered by at least one booking.

    A booking covers every day from its start date through its end date
    inclusive; an open-ended booking covers its start date only.
    """
    days: set[date] = set()
    for booking in bookings:
        first = as_date(booking.start_at)
        last = as_date(booking.end_at) if booking.end_at else first
        day = max(first, window_start)
        last = min(last, window_end)
        while day <= last:
            days.add(day)
            day += timedelta(days=1)
    return days


def utilization_row(
    vehicle: Vehicle, days_available: int, days_rented: int, revenue: Decimal
) -> UtilizationRow:
    return UtilizationRow(
        vehicle_id=vehicle.id,
        plate_number=vehicle.plate_number,
        brand=vehicle.brand,
        model=vehicle.model,
        category=vehicle.category,
        ownership_type=vehicle.ownership_type,
        days_available=days_available,
        days_rented=days_rented,
        utilization_percent=percent_of(days_rented, days_available),
        revenue=round2(revenue),
        revenue_per_day=round2(safe_divide(revenue, days_rented)),
    )


def summarize_categories(rows: list[UtilizationRow]) -> list[CategoryUtilization]:
    grouped: dict[str, list[UtilizationRow]] = defaultdict(list)
    for row in rows:
        grouped[row.category].append(row)
    return [
        CategoryUtilization(
            category=category,
            total_vehicles=len(members),
            avg_utilization=round2(
                safe_divide(money_sum(r.utilization_percent for r in members), len(members))
            ),
            total_revenue=money_sum(r.revenue for r in members),
        )
        for category, members in sorted(grouped.items())
    ]


async def overlapping_bookings(
    db: AsyncSession,
    vehicle_ids: list[int],
    date_from: date,
    date_to: date,
    statuses: Iterable[str] | None = None,
) -> dict[int, list[Booking]]:
    """Bookings per vehicle touching the range; all but CANCELLED by default."""
    if not vehicle_ids:
        return {}
    window_start = day_start(date_from)
    status_filter = (
        Booking.status.in_(list(statuses))
        if statuses is not None
        else Booking.status != BookingStatus.CANCELLED.value
    )
    result = await db.execute(
        select(Booking)
        .where(
            Booking.vehicle_id.in_(vehicle_ids),
            status_filter,
            Booking.start_at < day_after(date_to),
            or_(
                Booking.end_at >= window_start,
                and_(Booking.end_at.is_(None), Booking.start_at >= window_start),
            ),
        )
        .order_by(Booking.start_at, Booking.id)
    )
    grouped: dict[int, list[Booking]] = defaultdict(list)
    for booking in result.scalars().all():
        grouped[booking.vehicle_id].append(booking)
    return grouped


async def get_utilization_report(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    branch_id: str | None = None,
    vehicle_category: str | None = None,
) -> UtilizationReport:
    """Per-vehicle utilization for the range plus a per-category average.

    Vehicles that were not in the fleet at any point in the range are left
    out. Revenue is that of every booking overlapping the range.
    """
    validate_range(date_from, date_to)

    query = select(Vehicle).order_by(Vehicle.id)
    if branch_id:
        query = query.where(Vehicle.current_branch == branch_id)
    if vehicle_category:
        query = query.where(Vehicle.category == vehicle_category)
    vehicles = list((await db.execute(query)).scalars().all())

    grouped = await overlapping_bookings(db, [v.id for v in vehicles], date_from, date_to)
    revenue = await load_booking_revenue(
        db, [booking for bookings in grouped.values() for booking in bookings]
    )

    rows = []
    for vehicle in vehicles:
        window = available_window(vehicle, date_from, date_to)
        if window is None:
            continue
        bookings = grouped.get(vehicle.id, [])
        rows.append(
            utilization_row(
                vehicle,
                days_available=(window[1] - window[0]).days + 1,
                days_rented=len(rented_days(bookings, *window)),
                revenue=money_sum(revenue[b.id] for b in bookings),
            )
        )
    rows.sort(key=lambda row: (-row.utilization_percent, row.vehicle_id))

    logger.info(
        "utilization_report_computed",
        date_from=date_from.isoformat(),
        date_to=date_to.isoformat(),
        vehicles=len(rows),
    )
    return UtilizationReport(
        currency=settings.DEFAULT_CURRENCY,
        date_from=date_from,
        date_to=date_to,
        vehicles=rows,
        by_category=summarize_categories(rows),
    )
