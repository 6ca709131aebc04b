"""COGS / OPEX aggregation."""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.config import settings
from fleetbooks.models import ExpenseCategoryType
from fleetbooks.schemas.reports import (
    CostLine,
    CostReport,
    FixedCostBreakdown,
    MaintenanceCosts,
    MaintenanceLine,
)
from fleetbooks.services.reports.money import ZERO, money_sum, percent_of, round2
from fleetbooks.services.reports.periods import validate_range
from fleetbooks.services.reports.records import (
    ExpenseRecord,
    ReportWarnings,
    load_expense_records,
    load_maintenance_costs,
)

logger = structlog.get_logger()

# Expense category codes that map onto a named fixed-cost bucket
FIXED_COST_CODES = {
    "SALARIES": "salaries",
    "RENT": "rent",
    "UTILITIES": "utilities",
}


def fixed_cost_bucket(code: str, name: str) -> str:
    """Fixed-cost bucket for an OPEX category; unrecognised ones are ``other``."""
    bucket = FIXED_COST_CODES.get((code or "").upper())
    if bucket:
        return bucket
    if "utilit" in (name or "").lower():
        return "utilities"
    return "other"


def _category_lines(expenses: list[ExpenseRecord]) -> tuple[Decimal, list[CostLine]]:
    totals: dict[tuple[int | None, str, str], Decimal] = {}
    for expense in expenses:
        key = (expense.category_id, expense.category_code, expense.category_name)
        totals[key] = totals.get(key, ZERO) + expense.amount

    grand_total = money_sum(totals.values())
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0][1]))
    lines = [
        CostLine(
            category_id=category_id,
            category_code=code,
            category_name=name,
            amount=round2(amount),
            percentage=percent_of(amount, grand_total),
        )
        for (category_id, code, name), amount in ordered
    ]
    return grand_total, lines


def _maintenance(costs: Iterable[tuple[str, Decimal]]) -> MaintenanceCosts:
    by_type: dict[str, Decimal] = {}
    for kind, cost in costs:
        by_type[kind] = by_type.get(kind, ZERO) + cost
    return MaintenanceCosts(
        total=round2(money_sum(by_type.values())),
        by_type=[
            MaintenanceLine(type=kind, amount=round2(amount))
            for kind, amount in sorted(by_type.items(), key=lambda item: (-item[1], item[0]))
        ],
    )


def _fixed_costs(opex: list[ExpenseRecord]) -> FixedCostBreakdown:
    buckets = {"salaries": ZERO, "rent": ZERO, "utilities": ZERO, "other": ZERO}
    for expense in opex:
        buckets[fixed_cost_bucket(expense.category_code, expense.category_name)] += expense.amount
    return FixedCostBreakdown(
        **{name: round2(amount) for name, amount in buckets.items()},
        total=round2(money_sum(buckets.values())),
    )


def aggregate_costs(
    expenses: Iterable[ExpenseRecord],
    maintenance: Iterable[tuple[str, Decimal]],
    date_from: date,
    date_to: date,
    warnings: list[str] | None = None,
    currency: str | None = None,
) -> CostReport:
    """Classify expenses by category type and itemise maintenance.

    Maintenance is broken down for display only; the maintenance spend that
    counts towards COGS is what was booked as expenses.
    """
    cogs, opex = [], []
    for expense in expenses:
        if expense.category_type == ExpenseCategoryType.OPEX.value:
            opex.append(expense)
        else:
            cogs.append(expense)

    cogs_total, cogs_lines = _category_lines(cogs)
    opex_total, opex_lines = _category_lines(opex)

    return CostReport(
        currency=currency or settings.DEFAULT_CURRENCY,
        date_from=date_from,
        date_to=date_to,
        cogs_total=round2(cogs_total),
        cogs_by_category=cogs_lines,
        opex_total=round2(opex_total),
        opex_by_category=opex_lines,
        maintenance=_maintenance(maintenance),
        fixed_costs=_fixed_costs(opex),
        warnings=warnings or [],
    )


async def get_cost_report(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    branch_id: str | None = None,
    warnings: ReportWarnings | None = None,
) -> CostReport:
    validate_range(date_from, date_to)
    own_warnings = warnings or ReportWarnings("costs")

    expenses = await load_expense_records(
        db, date_from, date_to, branch_id=branch_id, warnings=own_warnings
    )
    maintenance = await load_maintenance_costs(db, date_from, date_to, branch_id=branch_id)

    logger.debug(
        "cost_report_computed",
        date_from=date_from.isoformat(),
        date_to=date_to.isoformat(),
        expenses=len(expenses),
    )
    return aggregate_costs(
        expenses, maintenance, date_from, date_to, warnings=own_warnings.as_list()
    )
