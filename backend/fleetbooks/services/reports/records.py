"""Load entity rows and derive the flat records the calculators aggregate.

Every optional link (booking, vehicle, customer, category) is resolved once
here with a typed fallback, so calculators never re-check for missing rows.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.models import (
    Booking,
    Customer,
    CustomerType,
    Expense,
    ExpenseCategory,
    ExpenseCategoryType,
    Invoice,
    InvoiceItem,
    MaintenanceRecord,
    OwnershipType,
    Vehicle,
)
from fleetbooks.models.invoice import REVENUE_INVOICE_STATUSES
from fleetbooks.models.maintenance import COSTED_MAINTENANCE_STATUSES
from fleetbooks.services.reports.money import ZERO, money_sum, to_decimal

logger = structlog.get_logger()

UNKNOWN = "Unknown"
UNKNOWN_CATEGORY_CODE = "UNKNOWN"

# Pass-through charges collected on behalf of third parties
FINE_KEYWORDS = ("fine", "penalty", "government", "traffic")


class ReportWarnings:
    """Collects partial-data warnings for one report, de-duplicated, in order."""

    def __init__(self, report: str) -> None:
        self.report = report
        self._messages: dict[str, None] = {}

    def add(self, message: str, **context: Any) -> None:
        if message in self._messages:
            return
        self._messages[message] = None
        logger.warning("partial_data", report=self.report, detail=message, **context)

    def extend(self, messages: Iterable[str]) -> None:
        for message in messages:
            self.add(message)

    def as_list(self) -> list[str]:
        return list(self._messages)


def day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def day_after(day: date) -> datetime:
    """Exclusive upper bound for timestamps falling on ``day``."""
    return day_start(day + timedelta(days=1))


def as_date(value: datetime | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def is_fine_item(label: str | None, amount: Decimal) -> bool:
    if amount <= 0 or not label:
        return False
    label = label.lower()
    return any(keyword in label for keyword in FINE_KEYWORDS)


def split_invoice_items(items: Iterable[InvoiceItem]) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(gross, discount, fines)`` for an invoice's lines.

    The discount is clamped to the gross so net revenue is never negative.
    """
    gross = discount = fines = ZERO
    for item in items:
        amount = to_decimal(item.amount)
        if is_fine_item(item.label, amount):
            fines += amount
        elif amount > 0:
            gross += amount
        elif amount < 0:
            discount += -amount
    return gross, min(discount, gross), fines


@dataclass(frozen=True, slots=True)
class RevenueRecord:
    """Revenue recognised from one invoice, with its reporting dimensions."""

    invoice_id: int
    booking_id: int | None
    vehicle_id: int | None
    effective_date: date
    branch_id: str
    vehicle_category: str
    customer_type: str
    ownership_type: str
    gross_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    fines_amount: Decimal

    @property
    def net_amount(self) -> Decimal:
        return self.gross_amount - self.discount_amount


def derive_revenue_record(
    invoice: Invoice,
    booking: Booking | None,
    vehicle: Vehicle | None,
    customer: Customer | None,
    warnings: ReportWarnings | None = None,
) -> RevenueRecord:
    gross, discount, fines = split_invoice_items(invoice.items)

    if warnings is not None and booking is not None and vehicle is None:
        warnings.add(
            f"Booking {booking.id} has no vehicle on record; "
            f"its revenue is reported under category '{UNKNOWN}'",
            booking_id=booking.id,
        )

    return RevenueRecord(
        invoice_id=invoice.id,
        booking_id=booking.id if booking else None,
        vehicle_id=vehicle.id if vehicle else None,
        effective_date=invoice.issue_date,
        branch_id=(booking.pickup_branch if booking else None) or UNKNOWN,
        vehicle_category=(vehicle.category if vehicle else None) or UNKNOWN,
        customer_type=(customer.customer_type if customer else None)
        or CustomerType.INDIVIDUAL.value,
        ownership_type=(vehicle.ownership_type if vehicle else None)
        or OwnershipType.COMPANY.value,
        gross_amount=gross,
        discount_amount=discount,
        tax_amount=to_decimal(invoice.tax_amount),
        fines_amount=fines,
    )


async def load_revenue_records(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    *,
    branch_id: str | None = None,
    vehicle_category: str | None = None,
    customer_type: str | None = None,
    warnings: ReportWarnings | None = None,
) -> list[RevenueRecord]:
    """Revenue records for ISSUED/PAID invoices issued within the range.

    Category and customer-type filters apply to the resolved dimensions, so
    filtering on ``Unknown`` or ``INDIVIDUAL`` also matches the fallbacks.
    """
    query = (
        select(Invoice, Booking, Vehicle, Customer)
        .outerjoin(Booking, Invoice.booking_id == Booking.id)
        .outerjoin(Vehicle, Booking.vehicle_id == Vehicle.id)
        .outerjoin(Customer, Booking.customer_id == Customer.id)
        .where(
            Invoice.status.in_(REVENUE_INVOICE_STATUSES),
            Invoice.issue_date >= date_from,
            Invoice.issue_date <= date_to,
        )
        .order_by(Invoice.issue_date, Invoice.id)
    )
    if branch_id:
        query = query.where(Booking.pickup_branch == branch_id)

    result = await db.execute(query)

    records = []
    for invoice, booking, vehicle, customer in result.all():
        record = derive_revenue_record(invoice, booking, vehicle, customer, warnings)
        if vehicle_category and record.vehicle_category != vehicle_category:
            continue
        if customer_type and record.customer_type != customer_type:
            continue
        records.append(record)
    return records


async def load_booking_revenue(
    db: AsyncSession, bookings: Iterable[Booking]
) -> dict[int, Decimal]:
    """Net revenue per booking id.

    A booking's revenue is the net of its ISSUED/PAID invoices; bookings not
    yet invoiced fall back to ``base_amount - discount_amount``.
    """
    bookings = list(bookings)
    if not bookings:
        return {}

    result = await db.execute(
        select(Invoice)
        .where(
            Invoice.booking_id.in_([b.id for b in bookings]),
            Invoice.status.in_(REVENUE_INVOICE_STATUSES),
        )
        .order_by(Invoice.id)
    )
    invoiced: dict[int, list[Decimal]] = defaultdict(list)
    for invoice in result.scalars().all():
        gross, discount, _ = split_invoice_items(invoice.items)
        invoiced[invoice.booking_id].append(gross - discount)

    revenue = {}
    for booking in bookings:
        if booking.id in invoiced:
            revenue[booking.id] = money_sum(invoiced[booking.id])
        else:
            revenue[booking.id] = max(
                to_decimal(booking.base_amount) - to_decimal(booking.discount_amount), ZERO
            )
    return revenue


@dataclass(frozen=True, slots=True)
class ExpenseRecord:
    expense_id: int
    incurred_on: date
    category_id: int | None
    category_code: str
    category_name: str
    category_type: str
    branch_id: str | None
    amount: Decimal
    investor_id: int | None
    vehicle_id: int | None


async def load_expense_records(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    *,
    branch_id: str | None = None,
    warnings: ReportWarnings | None = None,
) -> list[ExpenseRecord]:
    """Non-deleted expenses incurred within the range.

    Expenses whose category no longer exists are reported as COGS under
    ``Unknown``.
    """
    query = (
        select(Expense, ExpenseCategory)
        .outerjoin(ExpenseCategory, Expense.category_id == ExpenseCategory.id)
        .where(
            Expense.is_deleted.is_(False),
            Expense.date_incurred >= date_from,
            Expense.date_incurred <= date_to,
        )
        .order_by(Expense.date_incurred, Expense.id)
    )
    if branch_id:
        query = query.where(Expense.branch_id == branch_id)

    result = await db.execute(query)

    records = []
    for expense, category in result.all():
        if category is None:
            if warnings is not None:
                warnings.add(
                    f"Expense {expense.id} has no category on record; "
                    f"reported as COGS under '{UNKNOWN}'",
                    expense_id=expense.id,
                )
            code, name, kind = UNKNOWN_CATEGORY_CODE, UNKNOWN, ExpenseCategoryType.COGS.value
        else:
            if not category.is_active and warnings is not None:
                warnings.add(
                    f"Category {category.code} is inactive; "
                    f"its expenses are still reported under '{category.name}'",
                    category_id=category.id,
                )
            code, name, kind = category.code, category.name, category.type

        records.append(
            ExpenseRecord(
                expense_id=expense.id,
                incurred_on=expense.date_incurred,
                category_id=category.id if category else None,
                category_code=code,
                category_name=name,
                category_type=kind,
                branch_id=expense.branch_id,
                amount=to_decimal(expense.amount),
                investor_id=expense.investor_id,
                vehicle_id=expense.vehicle_id,
            )
        )
    return records


async def load_maintenance_costs(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    *,
    branch_id: str | None = None,
) -> list[tuple[str, Decimal]]:
    """``(maintenance type, cost)`` for jobs in progress or completed in range."""
    query = (
        select(MaintenanceRecord.type, MaintenanceRecord.cost)
        .where(
            MaintenanceRecord.status.in_(COSTED_MAINTENANCE_STATUSES),
            MaintenanceRecord.service_date >= date_from,
            MaintenanceRecord.service_date <= date_to,
        )
        .order_by(MaintenanceRecord.service_date, MaintenanceRecord.id)
    )
    if branch_id:
        query = query.where(MaintenanceRecord.branch_id == branch_id)

    result = await db.execute(query)
    return [(kind or "OTHER", to_decimal(cost)) for kind, cost in result.all()]
