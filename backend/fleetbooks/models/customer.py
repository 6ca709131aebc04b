"""Customer model."""

from enum import Enum

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fleetbooks.db.base import Base, TimestampMixin


class CustomerType(str, Enum):
    """Customer segment used by revenue filters."""

    INDIVIDUAL = "INDIVIDUAL"
    CORPORATE = "CORPORATE"


class Customer(Base, TimestampMixin):
    """Renting customer."""

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CustomerType.INDIVIDUAL.value
    )
