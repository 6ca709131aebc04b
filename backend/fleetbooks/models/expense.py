"""Expense and expense category models."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from fleetbooks.db.base import Base, TimestampMixin


class ExpenseCategoryType(str, Enum):
    """Whether a category is cost of goods sold or operating expense."""

    COGS = "COGS"
    OPEX = "OPEX"


class ExpenseCategory(Base, TimestampMixin):
    """Expense category. ``code`` is the stable identifier."""

    __tablename__ = "expense_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(8), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Expense(Base, TimestampMixin):
    """A recorded cost. Soft-deleted rows are ignored by every report."""

    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    category_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("expense_categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AED")
    date_incurred: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    branch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    investor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("investor_profiles.id", ondelete="SET NULL"), nullable=True
    )
    vehicle_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True
    )
    investor_payout_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
