"""Invoice and invoice line item models."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetbooks.db.base import Base, TimestampMixin


class InvoiceStatus(str, Enum):
    """Invoice status."""

    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    PAID = "PAID"
    VOID = "VOID"


# Invoices that represent recognised revenue
REVENUE_INVOICE_STATUSES = (InvoiceStatus.ISSUED.value, InvoiceStatus.PAID.value)

# Invoices that can never carry an outstanding balance
SETTLED_INVOICE_STATUSES = (InvoiceStatus.PAID.value, InvoiceStatus.VOID.value)


class Invoice(Base, TimestampMixin):
    """Customer invoice, usually raised against a booking."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    invoice_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    booking_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True
    )
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=InvoiceStatus.DRAFT.value, index=True
    )

    # Items are always needed to derive revenue, so load them with the invoice
    items: Mapped[list["InvoiceItem"]] = relationship(
        "InvoiceItem",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number={self.invoice_number}, status={self.status})>"


class InvoiceItem(Base):
    """Invoice line. Negative amounts are discounts."""

    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    label: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
