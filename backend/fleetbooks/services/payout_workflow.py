"""Persist investor payouts and move them through their lifecycle.

Statuses move ``DRAFT -> PENDING -> PAID``; DRAFT and PENDING payouts can
be CANCELLED. A payout is booked as a COGS expense when created, and that
expense is soft-deleted if the payout is cancelled.
"""

from datetime import UTC, date, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.audit import AuditAction, audit_payout_change
from fleetbooks.core.cache import ReportCache
from fleetbooks.core.exceptions import (
    PayoutTransitionError,
    UnknownEntityError,
    ValidationFailedError,
)
from fleetbooks.models import (
    Expense,
    InvestorPayout,
    Payment,
    PaymentStatus,
    PayoutStatus,
)
from fleetbooks.services.categories import (
    INVESTOR_PAYOUTS_CODE,
    ensure_default_categories,
    get_category_by_code,
)
from fleetbooks.services.invalidation import WriteEntity, invalidate_after_write
from fleetbooks.services.reports.payouts import preview_investor_payout

logger = structlog.get_logger()

ALLOWED_TRANSITIONS: dict[PayoutStatus, frozenset[PayoutStatus]] = {
    PayoutStatus.DRAFT: frozenset({PayoutStatus.PENDING, PayoutStatus.CANCELLED}),
    PayoutStatus.PENDING: frozenset({PayoutStatus.PAID, PayoutStatus.CANCELLED}),
    PayoutStatus.PAID: frozenset(),
    PayoutStatus.CANCELLED: frozenset(),
}

_TRANSITION_AUDIT = {
    PayoutStatus.PENDING: AuditAction.PAYOUT_SUBMIT,
    PayoutStatus.PAID: AuditAction.PAYOUT_PAY,
    PayoutStatus.CANCELLED: AuditAction.PAYOUT_CANCEL,
}


async def create_investor_payout(
    db: AsyncSession,
    cache: ReportCache,
    *,
    investor_id: int,
    period_from: date,
    period_to: date,
    branch_id: str | None = None,
    commission_percent: float | None = None,
    notes: str | None = None,
    create_payment: bool = False,
    payment_method: str = "BANK_TRANSFER",
    ip_address: str | None = None,
) -> InvestorPayout:
    """Freeze a fresh preview into a payout and book it as an expense.

    Raises:
        UnknownEntityError: if the investor does not exist.
        ValidationFailedError: if the net payout is not positive.
    """
    preview = await preview_investor_payout(
        db, investor_id, period_from, period_to, branch_id, commission_percent
    )
    if preview.net_payout <= 0:
        raise ValidationFailedError(
            "Net payout must be greater than zero",
            investor_id=investor_id,
            net_payout=str(preview.net_payout),
        )

    category = await get_category_by_code(db, INVESTOR_PAYOUTS_CODE)
    if category is None:
        await ensure_default_categories(db)
        category = await get_category_by_code(db, INVESTOR_PAYOUTS_CODE)

    expense = Expense(
        category_id=category.id,
        description=(
            f"Investor payout: {preview.investor_name} "
            f"({period_from.isoformat()} to {period_to.isoformat()})"
        ),
        amount=preview.net_payout,
        currency=preview.currency,
        date_incurred=period_to,
        branch_id=branch_id,
        investor_id=investor_id,
    )
    db.add(expense)

    payment = None
    if create_payment:
        payment = Payment(
            amount=preview.net_payout,
            method=payment_method,
            status=PaymentStatus.PENDING.value,
        )
        db.add(payment)
    await db.flush()

    payout = InvestorPayout(
        investor_id=investor_id,
        period_from=period_from,
        period_to=period_to,
        branch_id=branch_id,
        currency=preview.currency,
        total_revenue=preview.total_revenue,
        commission_percent=preview.commission_percent,
        commission_amount=preview.commission_amount,
        net_payout=preview.net_payout,
        breakdown=[row.model_dump(mode="json") for row in preview.breakdown],
        status=(PayoutStatus.PENDING if payment else PayoutStatus.DRAFT).value,
        expense_id=expense.id,
        payment_id=payment.id if payment else None,
        notes=notes,
    )
    db.add(payout)
    await db.flush()
    expense.investor_payout_id = payout.id

    await db.commit()
    await db.refresh(payout)

    await invalidate_after_write(cache, WriteEntity.PAYOUT, WriteEntity.EXPENSE, entity_id=payout.id)

    logger.info(
        "investor_payout_created",
        payout_id=payout.id,
        investor_id=investor_id,
        net_payout=str(payout.net_payout),
        status=payout.status,
    )
    audit_payout_change(
        payout.id,
        investor_id,
        AuditAction.PAYOUT_CREATE,
        details={"net_payout": str(payout.net_payout), "status": payout.status},
        ip_address=ip_address,
    )
    return payout


async def get_investor_payout(db: AsyncSession, payout_id: int) -> InvestorPayout:
    payout = await db.get(InvestorPayout, payout_id)
    if payout is None:
        raise UnknownEntityError("Investor payout", payout_id)
    return payout


async def update_payout_status(
    db: AsyncSession,
    cache: ReportCache,
    payout_id: int,
    status: PayoutStatus,
    notes: str | None = None,
    ip_address: str | None = None,
) -> InvestorPayout:
    """Move a payout to ``status``.

    Paying a payout settles its linked payment; cancelling it soft-deletes
    its expense so it drops out of the P&L.

    Raises:
        UnknownEntityError: if the payout does not exist.
        PayoutTransitionError: if the move is not allowed.
    """
    payout = await get_investor_payout(db, payout_id)
    current = PayoutStatus(payout.status)
    status = PayoutStatus(status)

    if status not in ALLOWED_TRANSITIONS[current]:
        raise PayoutTransitionError(
            f"Cannot move payout {payout_id} from {current.value} to {status.value}",
            payout_id=payout_id,
        )

    written = [WriteEntity.PAYOUT]
    if status == PayoutStatus.PAID and payout.payment_id:
        payment = await db.get(Payment, payout.payment_id)
        if payment is not None:
            payment.status = PaymentStatus.SUCCESS.value
            payment.paid_at = datetime.now(UTC)
            written.append(WriteEntity.PAYMENT)

    if status == PayoutStatus.CANCELLED and payout.expense_id:
        expense = await db.get(Expense, payout.expense_id)
        if expense is not None:
            expense.is_deleted = True
            written.append(WriteEntity.EXPENSE)

    payout.status = status.value
    if notes is not None:
        payout.notes = notes

    await db.commit()
    await db.refresh(payout)

    await invalidate_after_write(cache, *written, entity_id=payout.id)

    logger.info(
        "investor_payout_status_changed",
        payout_id=payout.id,
        from_status=current.value,
        to_status=status.value,
    )
    audit_payout_change(
        payout.id,
        payout.investor_id,
        _TRANSITION_AUDIT[status],
        details={"from_status": current.value, "to_status": status.value},
        ip_address=ip_address,
    )
    return payout
