"""Fleet vehicle model."""

from datetime import date
from enum import Enum

from sqlalchemy import Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fleetbooks.db.base import Base, TimestampMixin


class OwnershipType(str, Enum):
    """Who owns the vehicle."""

    COMPANY = "COMPANY"
    INVESTOR = "INVESTOR"


class Vehicle(Base, TimestampMixin):
    """Rental vehicle.

    ``acquired_on`` and ``retired_on`` bound the days the vehicle could be
    rented; either may be null when the vehicle predates tracking or is
    still in service.
    """

    __tablename__ = "vehicles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    plate_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    brand: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    ownership_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OwnershipType.COMPANY.value
    )
    investor_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("investor_profiles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    current_branch: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="AVAILABLE")
    acquired_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    retired_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Vehicle(id={self.id}, plate={self.plate_number}, category={self.category})>"
