"""Currency-safe arithmetic shared by every calculator.

All money is carried as :class:`~decimal.Decimal` and rounded half-up to
cents only where a figure is reported. Ratios never raise on a zero
denominator; they report ``0`` instead.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Coerce a DB/JSON number (or None) to Decimal without float artefacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round2(value: Any) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Any]) -> Decimal:
    return sum((to_decimal(v) for v in values), ZERO)


def apply_percent(amount: Any, percent: Any) -> Decimal:
    """``round2(amount * percent / 100)``."""
    return round2(to_decimal(amount) * to_decimal(percent) / HUNDRED)


def safe_divide(numerator: Any, denominator: Any) -> Decimal:
    denominator = to_decimal(denominator)
    if denominator == 0:
        return ZERO
    return to_decimal(numerator) / denominator


def percent_of(part: Any, whole: Any) -> Decimal:
    """``100 * part / whole`` rounded to 2 places; 0 when ``whole`` is 0."""
    return round2(safe_divide(to_decimal(part) * HUNDRED, whole))


def percent_change(current: Any, previous: Any) -> Decimal:
    """``100 * (current - previous) / previous``; 0 when ``previous`` is 0."""
    current, previous = to_decimal(current), to_decimal(previous)
    return percent_of(current - previous, previous)
