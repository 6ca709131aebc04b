"""Split a date range into labelled, contiguous reporting buckets."""

from bisect import bisect_right
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from dateutil.relativedelta import relativedelta

from fleetbooks.core.exceptions import InvalidRangeError


class Granularity(str, Enum):
    """Bucket size."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


@dataclass(frozen=True, slots=True)
class PeriodBucket:
    """One bucket: its canonical label and the clipped, inclusive range."""

    label: str
    start: date
    end: date


def validate_range(date_from: date | None, date_to: date | None) -> None:
    if date_from is None or date_to is None:
        raise InvalidRangeError("Both dateFrom and dateTo are required")
    if date_to < date_from:
        raise InvalidRangeError(
            f"dateTo ({date_to.isoformat()}) is before dateFrom ({date_from.isoformat()})"
        )


def period_start(day: date, granularity: Granularity) -> date:
    """First day of the canonical period containing ``day``."""
    match granularity:
        case Granularity.DAY:
            return day
        case Granularity.WEEK:
            # ISO weeks start on Monday
            return day - timedelta(days=day.weekday())
        case Granularity.MONTH:
            return day.replace(day=1)
        case Granularity.QUARTER:
            return date(day.year, 3 * ((day.month - 1) // 3) + 1, 1)
        case Granularity.YEAR:
            return date(day.year, 1, 1)
    raise ValueError(f"Unsupported granularity: {granularity}")


def _step(granularity: Granularity) -> relativedelta:
    return {
        Granularity.DAY: relativedelta(days=1),
        Granularity.WEEK: relativedelta(weeks=1),
        Granularity.MONTH: relativedelta(months=1),
        Granularity.QUARTER: relativedelta(months=3),
        Granularity.YEAR: relativedelta(years=1),
    }[granularity]


def period_label(start: date, granularity: Granularity) -> str:
    """Label for the canonical period beginning at ``start``."""
    match granularity:
        case Granularity.DAY:
            return start.isoformat()
        case Granularity.WEEK:
            iso_year, iso_week, _ = start.isocalendar()
            return f"{iso_year}-W{iso_week:02d}"
        case Granularity.MONTH:
            return f"{start.year}-{start.month:02d}"
        case Granularity.QUARTER:
            return f"{start.year}-Q{(start.month - 1) // 3 + 1}"
        case Granularity.YEAR:
            return str(start.year)
    raise ValueError(f"Unsupported granularity: {granularity}")


def bucket_periods(
    date_from: date, date_to: date, granularity: Granularity | str
) -> list[PeriodBucket]:
    """Return chronological buckets exactly covering ``[date_from, date_to]``.

    The first and last buckets are clipped to the range but keep the label
    of the full canonical period, e.g. a range starting on 15 March still
    yields a ``2024-03`` bucket for 15-31 March.

    Raises:
        InvalidRangeError: if ``date_to`` is before ``date_from``.
    """
    validate_range(date_from, date_to)
    granularity = Granularity(granularity)
    step = _step(granularity)

    buckets: list[PeriodBucket] = []
    canonical = period_start(date_from, granularity)
    while canonical <= date_to:
        next_canonical = canonical + step
        buckets.append(
            PeriodBucket(
                label=period_label(canonical, granularity),
                start=max(canonical, date_from),
                end=min(next_canonical - timedelta(days=1), date_to),
            )
        )
        canonical = next_canonical

    return buckets


def find_bucket(
    buckets: list[PeriodBucket], day: date, starts: list[date] | None = None
) -> PeriodBucket | None:
    """Bucket containing ``day``, or None when it falls outside the range.

    Pass ``starts`` (the bucket start dates) when looking up many days.
    """
    if not buckets or day < buckets[0].start or day > buckets[-1].end:
        return None
    if starts is None:
        starts = [b.start for b in buckets]
    return buckets[bisect_right(starts, day) - 1]


def shift_previous_period(date_from: date, date_to: date) -> tuple[date, date]:
    """The window of equal length ending the day before ``date_from``."""
    length = (date_to - date_from).days + 1
    previous_to = date_from - timedelta(days=1)
    return previous_to - timedelta(days=length - 1), previous_to


def shift_year_over_year(date_from: date, date_to: date) -> tuple[date, date]:
    """The same calendar window one year earlier (29 Feb maps to 28 Feb)."""
    year = relativedelta(years=1)
    return date_from - year, date_to - year
