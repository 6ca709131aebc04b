"""Per-vehicle performance: revenue, utilization and break-even on purchase cost."""

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.config import settings
from fleetbooks.core.exceptions import UnknownEntityError
from fleetbooks.models import Booking, Expense, ExpenseCategory, Vehicle
from fleetbooks.models.booking import ACTIVE_BOOKING_STATUSES
from fleetbooks.schemas.reports import (
    BookingPerformance,
    BreakEven,
    VehiclePerformanceReport,
    VehiclePeriodPerformance,
)
from fleetbooks.services.reports.money import (
    ZERO,
    money_sum,
    percent_of,
    round2,
    safe_divide,
    to_decimal,
)
from fleetbooks.services.reports.periods import (
    Granularity,
    bucket_periods,
    find_bucket,
    validate_range,
)
from fleetbooks.services.reports.records import (
    ReportWarnings,
    as_date,
    load_booking_revenue,
)
from fleetbooks.services.reports.utilization import (
    available_window,
    overlapping_bookings,
    rented_days,
)

logger = structlog.get_logger()

PURCHASE_CATEGORY_CODES = frozenset({"VEHICLE_PURCHASE", "PURCHASE_PRICE_FROM_AUCTION"})
_PURCHASE_NAME = re.compile(r"purchase|auction.*price|price.*auction", re.IGNORECASE)


class BreakEvenStatus(str, Enum):
    BREAK_EVEN = "BREAK_EVEN"
    NOT_BREAK_EVEN = "NOT_BREAK_EVEN"
    NO_PURCHASE_COST = "NO_PURCHASE_COST"


def is_purchase_category(code: str, name: str) -> bool:
    """Whether expenses in this category are the cost of buying a vehicle."""
    return (
        code.upper() in PURCHASE_CATEGORY_CODES
        or "PURCHASE" in code.upper()
        or bool(_PURCHASE_NAME.search(name))
    )


def break_even(revenue: Decimal, purchase_cost: Decimal) -> BreakEven:
    net_profit = round2(revenue - purchase_cost)
    if purchase_cost <= 0:
        status = BreakEvenStatus.NO_PURCHASE_COST
    elif net_profit >= 0:
        status = BreakEvenStatus.BREAK_EVEN
    else:
        status = BreakEvenStatus.NOT_BREAK_EVEN
    return BreakEven(
        status=status.value,
        purchase_cost=round2(purchase_cost),
        net_profit=net_profit,
        remaining=-net_profit if status is BreakEvenStatus.NOT_BREAK_EVEN else ZERO,
        profit_after_break_even=max(net_profit, ZERO),
        percent=min(percent_of(revenue, purchase_cost), Decimal("100.00")),
    )


@dataclass(frozen=True, slots=True)
class VehicleCosts:
    purchase_cost: Decimal
    operating_expenses: Decimal


async def load_vehicle_costs(
    db: AsyncSession,
    vehicle_id: int,
    date_from: date,
    date_to: date,
    warnings: ReportWarnings | None = None,
) -> VehicleCosts:
    """Purchase cost over the vehicle's lifetime and other linked spend in range.

    Only expenses linked to the vehicle count; deleted ones are ignored.
    """
    result = await db.execute(
        select(Expense, ExpenseCategory)
        .outerjoin(ExpenseCategory, Expense.category_id == ExpenseCategory.id)
        .where(Expense.vehicle_id == vehicle_id, Expense.is_deleted.is_(False))
        .order_by(Expense.date_incurred, Expense.id)
    )

    purchase: list[Decimal] = []
    operating: list[Decimal] = []
    for expense, category in result.all():
        amount = to_decimal(expense.amount)
        if category is not None and is_purchase_category(category.code, category.name):
            purchase.append(amount)
        elif date_from <= expense.date_incurred <= date_to:
            if category is None and warnings is not None:
                warnings.add(
                    f"Expense {expense.id} has no category on record; "
                    "counted as an operating expense",
                    expense_id=expense.id,
                )
            operating.append(amount)
    return VehicleCosts(purchase_cost=money_sum(purchase), operating_expenses=money_sum(operating))


def _period_breakdown(
    bookings: list[Booking],
    revenue: dict[int, Decimal],
    days: set[date],
    date_from: date,
    date_to: date,
    granularity: Granularity,
) -> list[VehiclePeriodPerformance]:
    """Per-bucket revenue, bookings and rented days.

    A booking lands in the bucket of its start date, clipped to the range;
    rented days land in the bucket they fall in.
    """
    buckets = bucket_periods(date_from, date_to, granularity)
    starts = [bucket.start for bucket in buckets]

    booked: dict[str, list[Booking]] = {bucket.label: [] for bucket in buckets}
    for booking in bookings:
        bucket = find_bucket(buckets, max(as_date(booking.start_at), date_from), starts)
        if bucket is not None:
            booked[bucket.label].append(booking)

    return [
        VehiclePeriodPerformance(
            label=bucket.label,
            start=bucket.start,
            end=bucket.end,
            revenue=round2(money_sum(revenue[b.id] for b in booked[bucket.label])),
            bookings=len(booked[bucket.label]),
            days_rented=sum(1 for day in days if bucket.start <= day <= bucket.end),
        )
        for bucket in buckets
    ]


async def get_vehicle_performance(
    db: AsyncSession,
    vehicle_id: int,
    date_from: date,
    date_to: date,
    granularity: Granularity | str = Granularity.MONTH,
) -> VehiclePerformanceReport:
    """Revenue, utilization and break-even for one vehicle over a range.

    Bookings count when CONFIRMED, CHECKED_OUT or CHECKED_IN and touching
    the range. Days are counted inside the part of the range the vehicle
    was in the fleet.

    Raises:
        InvalidRangeError: if the range is inverted.
        UnknownEntityError: if the vehicle does not exist.
    """
    validate_range(date_from, date_to)
    granularity = Granularity(granularity)

    vehicle = await db.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise UnknownEntityError("Vehicle", vehicle_id)

    warnings = ReportWarnings("vehicle_performance")
    grouped = await overlapping_bookings(
        db, [vehicle.id], date_from, date_to, statuses=ACTIVE_BOOKING_STATUSES
    )
    bookings = grouped.get(vehicle.id, [])
    revenue = await load_booking_revenue(db, bookings)
    costs = await load_vehicle_costs(db, vehicle.id, date_from, date_to, warnings)

    window = available_window(vehicle, date_from, date_to)
    if window is None:
        warnings.add(f"Vehicle {vehicle.id} was not in the fleet during the range")
        days: set[date] = set()
        days_available = 0
    else:
        days = rented_days(bookings, *window)
        days_available = (window[1] - window[0]).days + 1

    total_revenue = round2(money_sum(revenue.values()))
    booking_rows = [
        BookingPerformance(
            booking_id=booking.id,
            start_at=booking.start_at,
            end_at=booking.end_at,
            status=booking.status,
            days_rented=len(rented_days([booking], *window)) if window else 0,
            revenue=round2(revenue[booking.id]),
        )
        for booking in bookings
    ]

    logger.info(
        "vehicle_performance_computed",
        vehicle_id=vehicle.id,
        date_from=date_from.isoformat(),
        date_to=date_to.isoformat(),
        bookings=len(bookings),
    )
    return VehiclePerformanceReport(
        currency=settings.DEFAULT_CURRENCY,
        vehicle_id=vehicle.id,
        plate_number=vehicle.plate_number,
        brand=vehicle.brand,
        model=vehicle.model,
        category=vehicle.category,
        ownership_type=vehicle.ownership_type,
        date_from=date_from,
        date_to=date_to,
        granularity=granularity.value,
        total_revenue=total_revenue,
        operating_expenses=round2(costs.operating_expenses),
        operating_profit=round2(total_revenue - costs.operating_expenses),
        bookings_count=len(bookings),
        days_available=days_available,
        days_rented=len(days),
        days_idle=max(days_available - len(days), 0),
        utilization_percent=percent_of(len(days), days_available),
        average_daily_revenue=round2(safe_divide(total_revenue, len(days))),
        average_revenue_per_booking=round2(safe_divide(total_revenue, len(bookings))),
        break_even=break_even(total_revenue, costs.purchase_cost),
        breakdown=_period_breakdown(bookings, revenue, days, date_from, date_to, granularity),
        bookings=booking_rows,
        warnings=warnings.as_list(),
    )
