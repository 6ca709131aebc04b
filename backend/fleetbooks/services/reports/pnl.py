"""Profit and loss with optional period comparison."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.config import settings
from fleetbooks.schemas.reports import (
    CogsSection,
    CostReport,
    MarginComparison,
    MetricComparison,
    OpexSection,
    PeriodAmount,
    PeriodInfo,
    PnLComparison,
    ProfitAndLossReport,
    ProfitSection,
    RevenueReport,
    RevenueSection,
)
from fleetbooks.services.reports.costs import get_cost_report
from fleetbooks.services.reports.money import percent_change, percent_of, round2, to_decimal
from fleetbooks.services.reports.periods import (
    Granularity,
    shift_previous_period,
    shift_year_over_year,
    validate_range,
)
from fleetbooks.services.reports.records import ReportWarnings
from fleetbooks.services.reports.revenue import RevenueDimension, get_revenue_report

logger = structlog.get_logger()


class PeriodType(str, Enum):
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"
    QUARTER = "QUARTER"
    YEAR = "YEAR"

    @property
    def granularity(self) -> Granularity:
        return Granularity(self.value.lower())


class ComparisonMode(str, Enum):
    NONE = "NONE"
    PREVIOUS_PERIOD = "PREVIOUS_PERIOD"
    YEAR_OVER_YEAR = "YEAR_OVER_YEAR"


# One window shift per comparison mode; NONE has no comparison window.
COMPARISON_WINDOWS: dict[ComparisonMode, Callable[[date, date], tuple[date, date]]] = {
    ComparisonMode.PREVIOUS_PERIOD: shift_previous_period,
    ComparisonMode.YEAR_OVER_YEAR: shift_year_over_year,
}


@dataclass(frozen=True)
class PnLFigures:
    """The headline figures compared between periods."""

    revenue: Decimal
    cogs: Decimal
    opex: Decimal

    @property
    def gross_profit(self) -> Decimal:
        return self.revenue - self.cogs

    @property
    def net_profit(self) -> Decimal:
        return self.gross_profit - self.opex

    @property
    def gross_margin(self) -> Decimal:
        return percent_of(self.gross_profit, self.revenue)

    @property
    def net_margin(self) -> Decimal:
        return percent_of(self.net_profit, self.revenue)


def compute_profit(figures: PnLFigures) -> ProfitSection:
    return ProfitSection(
        gross_profit=round2(figures.gross_profit),
        net_profit=round2(figures.net_profit),
        gross_margin=figures.gross_margin,
        net_margin=figures.net_margin,
    )


def compare_metric(current: Decimal, previous: Decimal) -> MetricComparison:
    current, previous = to_decimal(current), to_decimal(previous)
    return MetricComparison(
        current=round2(current),
        previous=round2(previous),
        change=round2(current - previous),
        change_percent=percent_change(current, previous),
    )


def compare_margin(current: Decimal, previous: Decimal) -> MarginComparison:
    """Margins are already ratios: report the percentage-point delta."""
    return MarginComparison(
        current=round2(current), previous=round2(previous), change=round2(current - previous)
    )


def build_comparison(
    mode: ComparisonMode,
    previous_from: date,
    previous_to: date,
    current: PnLFigures,
    previous: PnLFigures,
    earliest_data_date: date | None = None,
) -> PnLComparison:
    return PnLComparison(
        mode=mode.value,
        previous_from=previous_from,
        previous_to=previous_to,
        before_data_floor=earliest_data_date is not None and previous_from < earliest_data_date,
        revenue=compare_metric(current.revenue, previous.revenue),
        cogs=compare_metric(current.cogs, previous.cogs),
        opex=compare_metric(current.opex, previous.opex),
        gross_profit=compare_metric(current.gross_profit, previous.gross_profit),
        net_profit=compare_metric(current.net_profit, previous.net_profit),
        gross_margin=compare_margin(current.gross_margin, previous.gross_margin),
        net_margin=compare_margin(current.net_margin, previous.net_margin),
    )


def figures_from(revenue: RevenueReport, costs: CostReport) -> PnLFigures:
    return PnLFigures(
        revenue=revenue.summary.net_revenue, cogs=costs.cogs_total, opex=costs.opex_total
    )


def period_label(date_from: date, date_to: date) -> str:
    return f"{date_from.isoformat()} to {date_to.isoformat()}"


async def _period_reports(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    granularity: Granularity,
    branch_id: str | None,
    warnings: ReportWarnings,
) -> tuple[RevenueReport, CostReport]:
    revenue = await get_revenue_report(
        db, date_from, date_to, granularity, RevenueDimension.BRANCH, branch_id=branch_id
    )
    warnings.extend(revenue.warnings)
    costs = await get_cost_report(db, date_from, date_to, branch_id=branch_id, warnings=warnings)
    return revenue, costs


async def get_profit_and_loss(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    period_type: PeriodType = PeriodType.MONTH,
    branch_id: str | None = None,
    compare_with: ComparisonMode = ComparisonMode.NONE,
    earliest_data_date: date | None = None,
) -> ProfitAndLossReport:
    """Full P&L statement for a range.

    With ``compare_with`` set, the same statement is computed for the
    shifted window and every headline metric is paired with its previous
    value. A shifted window reaching before ``earliest_data_date`` is
    flagged but still computed; its zeros are genuine empty periods.

    Raises:
        InvalidRangeError: if the range is inverted.
    """
    validate_range(date_from, date_to)
    period_type = PeriodType(period_type)
    compare_with = ComparisonMode(compare_with)
    if earliest_data_date is None:
        earliest_data_date = settings.EARLIEST_DATA_DATE

    warnings = ReportWarnings("pnl")
    revenue, costs = await _period_reports(
        db, date_from, date_to, period_type.granularity, branch_id, warnings
    )
    current = figures_from(revenue, costs)

    comparison = None
    shift = COMPARISON_WINDOWS.get(compare_with)
    if shift is not None:
        previous_from, previous_to = shift(date_from, date_to)
        previous_revenue, previous_costs = await _period_reports(
            db, previous_from, previous_to, period_type.granularity, branch_id, warnings
        )
        comparison = build_comparison(
            compare_with,
            previous_from,
            previous_to,
            current,
            figures_from(previous_revenue, previous_costs),
            earliest_data_date,
        )

    logger.info(
        "pnl_report_computed",
        date_from=date_from.isoformat(),
        date_to=date_to.isoformat(),
        compare_with=compare_with.value,
    )
    return ProfitAndLossReport(
        currency=revenue.currency,
        period=PeriodInfo(
            date_from=date_from,
            date_to=date_to,
            type=period_type.value,
            label=period_label(date_from, date_to),
        ),
        revenue=RevenueSection(
            total=revenue.summary.net_revenue,
            gross=revenue.summary.gross_revenue,
            discounts=revenue.summary.discounts,
            tax=revenue.summary.tax,
            breakdown=[
                PeriodAmount(label=b.label, start=b.start, end=b.end, amount=b.net_revenue)
                for b in revenue.by_period
            ],
        ),
        cogs=CogsSection(
            total=costs.cogs_total,
            by_category=costs.cogs_by_category,
            maintenance=costs.maintenance,
        ),
        opex=OpexSection(
            total=costs.opex_total,
            by_category=costs.opex_by_category,
            fixed_costs=costs.fixed_costs,
        ),
        profit=compute_profit(current),
        comparison=comparison,
        warnings=warnings.as_list(),
    )
