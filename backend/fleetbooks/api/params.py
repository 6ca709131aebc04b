"""Query parameter parsing shared by the report endpoints."""

from datetime import date

from fleetbooks.core.exceptions import InvalidRangeError
from fleetbooks.services.reports.periods import validate_range


def parse_iso_date(value: str | None, name: str) -> date:
    """Parse a required ``YYYY-MM-DD`` query parameter.

    Raises:
        InvalidRangeError: if the value is missing or not an ISO calendar date.
    """
    if not value:
        raise InvalidRangeError(f"{name} is required")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidRangeError(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}") from None


def parse_date_range(
    date_from: str | None,
    date_to: str | None,
    from_name: str = "dateFrom",
    to_name: str = "dateTo",
) -> tuple[date, date]:
    start = parse_iso_date(date_from, from_name)
    end = parse_iso_date(date_to, to_name)
    validate_range(start, end)
    return start, end
