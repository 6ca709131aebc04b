"""Accounts-receivable aging."""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from enum import Enum

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.config import settings
from fleetbooks.models import Booking, Customer, Invoice, Payment, PaymentStatus
from fleetbooks.models.invoice import SETTLED_INVOICE_STATUSES
from fleetbooks.schemas.reports import AgingBucketTotal, OutstandingInvoice, ReceivablesReport
from fleetbooks.services.reports.money import ZERO, money_sum, round2, to_decimal
from fleetbooks.services.reports.records import day_after

logger = structlog.get_logger()


class AgingBucket(str, Enum):
    CURRENT = "0-30"
    DAYS_31_60 = "31-60"
    DAYS_61_90 = "61-90"
    OVER_90 = "90+"


def days_overdue(reference_date: date, due_date: date) -> int:
    return max(0, (reference_date - due_date).days)


def aging_bucket(overdue: int) -> AgingBucket:
    if overdue <= 30:
        return AgingBucket.CURRENT
    if overdue <= 60:
        return AgingBucket.DAYS_31_60
    if overdue <= 90:
        return AgingBucket.DAYS_61_90
    return AgingBucket.OVER_90


def allocate_booking_payment(
    amount: Decimal, invoices: list[Invoice], paid: dict[int, Decimal]
) -> None:
    """Apply a payment made against a booking to its open invoices.

    Invoices are settled oldest first, each up to its total; whatever is
    left over lands on the last one.
    """
    for position, invoice in enumerate(invoices, start=1):
        if amount <= 0:
            return
        if position == len(invoices):
            share = amount
        else:
            share = min(amount, max(to_decimal(invoice.total) - paid[invoice.id], ZERO))
        paid[invoice.id] += share
        amount -= share


async def _paid_amounts(
    db: AsyncSession, invoices: list[Invoice], as_of: date
) -> dict[int, Decimal]:
    """Successful payments per invoice received on or before ``as_of``.

    Payments linked to an invoice count against it. Payments linked only to
    a booking count against that booking's invoices. Each payment counts
    once.
    """
    if not invoices:
        return {}
    by_booking: dict[int, list[Invoice]] = defaultdict(list)
    for invoice in invoices:
        if invoice.booking_id is not None:
            by_booking[invoice.booking_id].append(invoice)

    linked = Payment.invoice_id.in_([invoice.id for invoice in invoices])
    if by_booking:
        linked = or_(
            linked,
            and_(Payment.invoice_id.is_(None), Payment.booking_id.in_(list(by_booking))),
        )
    result = await db.execute(
        select(Payment.invoice_id, Payment.booking_id, Payment.amount)
        .where(
            linked,
            Payment.status == PaymentStatus.SUCCESS.value,
            or_(Payment.paid_at.is_(None), Payment.paid_at < day_after(as_of)),
        )
        .order_by(Payment.id)
    )

    paid: dict[int, Decimal] = defaultdict(Decimal)
    unallocated: dict[int, Decimal] = defaultdict(Decimal)
    for invoice_id, booking_id, amount in result.all():
        if invoice_id is not None:
            paid[invoice_id] += to_decimal(amount)
        else:
            unallocated[booking_id] += to_decimal(amount)

    for booking_id, amount in unallocated.items():
        allocate_booking_payment(amount, by_booking[booking_id], paid)
    return dict(paid)


async def get_receivables_aging(
    db: AsyncSession, as_of: date, branch_id: str | None = None
) -> ReceivablesReport:
    """Outstanding invoice balances as of ``as_of``, bucketed by days overdue.

    Only invoices issued on or before ``as_of`` and not PAID or VOID are
    considered; fully paid ones drop out.
    """
    query = (
        select(Invoice, Booking, Customer)
        .outerjoin(Booking, Invoice.booking_id == Booking.id)
        .outerjoin(Customer, Booking.customer_id == Customer.id)
        .where(
            Invoice.status.not_in(SETTLED_INVOICE_STATUSES),
            Invoice.issue_date <= as_of,
        )
        .order_by(Invoice.id)
    )
    if branch_id:
        query = query.where(Booking.pickup_branch == branch_id)
    rows = (await db.execute(query)).all()

    paid = await _paid_amounts(db, [invoice for invoice, _, _ in rows], as_of)

    outstanding: list[OutstandingInvoice] = []
    bucket_totals: dict[AgingBucket, list[Decimal]] = defaultdict(list)
    for invoice, _booking, customer in rows:
        total = to_decimal(invoice.total)
        paid_amount = paid.get(invoice.id, ZERO)
        balance = round2(total - paid_amount)
        if balance <= 0:
            continue

        overdue = days_overdue(as_of, invoice.due_date)
        bucket = aging_bucket(overdue)
        bucket_totals[bucket].append(balance)
        outstanding.append(
            OutstandingInvoice(
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                customer_name=invoice.customer_name or (customer.name if customer else "N/A"),
                issue_date=invoice.issue_date,
                due_date=invoice.due_date,
                total=round2(total),
                paid_amount=round2(paid_amount),
                balance=balance,
                days_overdue=overdue,
                bucket=bucket.value,
            )
        )

    outstanding.sort(key=lambda inv: (-inv.days_overdue, inv.invoice_number))
    buckets = [
        AgingBucketTotal(
            bucket=bucket.value,
            total=money_sum(bucket_totals[bucket]),
            invoice_count=len(bucket_totals[bucket]),
        )
        for bucket in AgingBucket
    ]

    logger.info("receivables_report_computed", as_of=as_of.isoformat(), invoices=len(outstanding))
    return ReceivablesReport(
        currency=settings.DEFAULT_CURRENCY,
        as_of=as_of,
        branch_id=branch_id,
        total=money_sum(b.total for b in buckets),
        buckets=buckets,
        invoices=outstanding,
    )
