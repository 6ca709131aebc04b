"""Maintenance record model."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from fleetbooks.db.base import Base, TimestampMixin


class MaintenanceStatus(str, Enum):
    """Maintenance job status."""

    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


# Jobs whose cost has been (or is being) incurred
COSTED_MAINTENANCE_STATUSES = (
    MaintenanceStatus.IN_PROGRESS.value,
    MaintenanceStatus.COMPLETED.value,
)


class MaintenanceRecord(Base, TimestampMixin):
    """Maintenance work carried out on a vehicle."""

    __tablename__ = "maintenance_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    vehicle_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="SERVICE")
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=MaintenanceStatus.OPEN.value
    )
    service_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    branch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
