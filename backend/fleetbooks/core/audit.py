"""Audit logging for money-moving and administrative operations.

Audit events are structured log lines (``audit_event``) rather than stored
rows; downstream log shipping filters on ``audit=True``.
"""

from typing import Any

import structlog

logger = structlog.get_logger("audit")

# Show only the last N chars of masked values
_MASK_SUFFIX_LENGTH = 4


class AuditAction:
    """Audit action constants."""

    # Investor payouts
    PAYOUT_CREATE = "payout.create"
    PAYOUT_SUBMIT = "payout.submit"
    PAYOUT_PAY = "payout.pay"
    PAYOUT_CANCEL = "payout.cancel"

    # Report cache administration
    CACHE_CLEAR = "report_cache.clear"


def audit_log(
    action: str,
    resource_type: str | None = None,
    resource_id: str | int | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
    ip_address: str | None = None,
) -> None:
    """Log an audit event.

    Args:
        action: The action performed (use AuditAction constants)
        resource_type: Type of resource acted upon (e.g. "investor_payout")
        resource_id: ID of the resource acted upon
        details: Additional details; sensitive fields are masked
        success: Whether the action succeeded
        ip_address: Client IP address
    """
    log_data: dict[str, Any] = {
        "audit": True,
        "action": action,
        "success": success,
    }

    if resource_type:
        log_data["resource_type"] = resource_type
    if resource_id is not None:
        log_data["resource_id"] = str(resource_id)
    if ip_address:
        log_data["ip_address"] = ip_address
    if details:
        log_data["details"] = _sanitize_details(details)

    if success:
        logger.info("audit_event", **log_data)
    else:
        logger.warning("audit_event", **log_data)


def _sanitize_details(details: dict[str, Any]) -> dict[str, Any]:
    """Mask bank details before they reach the logs."""
    sensitive_fields = {"iban", "account_number", "swift", "card"}

    sanitized = {}
    for key, value in details.items():
        if any(sensitive in key.lower() for sensitive in sensitive_fields):
            if isinstance(value, str) and len(value) > _MASK_SUFFIX_LENGTH:
                sanitized[key] = f"****{value[-_MASK_SUFFIX_LENGTH:]}"
            else:
                sanitized[key] = "****"
        else:
            sanitized[key] = value
    return sanitized


def audit_payout_change(
    payout_id: int,
    investor_id: int,
    action: str,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> None:
    """Convenience wrapper for payout lifecycle events."""
    audit_log(
        action=action,
        resource_type="investor_payout",
        resource_id=payout_id,
        details={"investor_id": investor_id, **(details or {})},
        ip_address=ip_address,
    )
