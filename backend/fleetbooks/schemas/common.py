"""Shared field types for report payloads."""

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer

# Money and percentages are exact Decimals internally and plain JSON
# numbers on the wire, never pre-formatted strings.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
Percent = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ReportModel(BaseModel):
    """Base for report payloads."""

    model_config = ConfigDict(frozen=True)


class ErrorResponse(BaseModel):
    """Structured error body returned for every failed report request."""

    error: str
    message: str
