"""Request/response schemas for the investor payout workflow."""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from fleetbooks.models.investor_payout import PayoutStatus
from fleetbooks.schemas.common import Money, Percent


class PayoutCreate(BaseModel):
    """Create a payout from a fresh preview."""

    investor_id: int
    period_from: date
    period_to: date
    branch_id: str | None = None
    commission_percent: float | None = Field(None, ge=0, le=100)
    notes: str | None = None
    create_payment: bool = False
    payment_method: Literal["BANK_TRANSFER", "CASH", "OTHER"] = "BANK_TRANSFER"


class PayoutStatusUpdate(BaseModel):
    status: PayoutStatus
    notes: str | None = None


class PayoutResponse(BaseModel):
    """Persisted payout."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    investor_id: int
    period_from: date
    period_to: date
    branch_id: str | None
    currency: str
    total_revenue: Money
    commission_percent: Percent
    commission_amount: Money
    net_payout: Money
    breakdown: list[dict[str, Any]]
    status: str
    expense_id: int | None
    payment_id: int | None
    notes: str | None
    created_at: datetime
