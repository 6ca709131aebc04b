"""Domain errors raised by the reporting engine.

Every error carries the HTTP status and machine-readable code it is
rendered with at the API boundary, so calculators never import FastAPI.
"""

from typing import Any


class ReportError(Exception):
    """Base class for reporting errors surfaced to callers."""

    status_code: int = 500
    error: str = "report_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message}


class InvalidRangeError(ReportError):
    """A date range is inverted, malformed, or missing a bound."""

    status_code = 400
    error = "invalid_range"


class ValidationFailedError(ReportError):
    """A non-date input failed validation (e.g. commission outside 0-100)."""

    status_code = 400
    error = "validation_error"


class UnknownEntityError(ReportError):
    """A referenced investor, vehicle, payout or category does not exist."""

    status_code = 404
    error = "not_found"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class PayoutTransitionError(ReportError):
    """A payout status change is not allowed from its current status."""

    status_code = 409
    error = "invalid_transition"


class CacheComputeFailure(ReportError):
    """The computation behind a cached report failed unexpectedly."""

    status_code = 500
    error = "report_failed"

    def __init__(self, fingerprint: str) -> None:
        super().__init__("Failed to compute report", fingerprint=fingerprint)
        self.fingerprint = fingerprint
