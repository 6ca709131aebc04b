"""Investor profile model."""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fleetbooks.db.base import Base, TimestampMixin


class InvestorProfile(Base, TimestampMixin):
    """A vehicle-owning investor whose fleet revenue is paid out periodically."""

    __tablename__ = "investor_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<InvestorProfile(id={self.id}, name={self.name})>"
