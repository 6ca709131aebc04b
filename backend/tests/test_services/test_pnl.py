"""Tests for the profit and loss calculator."""

from datetime import date
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.services.reports.pnl import (
    ComparisonMode,
    PeriodType,
    PnLFigures,
    compare_margin,
    compare_metric,
    compute_profit,
    get_profit_and_loss,
)


class TestProfitFormulas:
    def test_margins_scenario(self) -> None:
        profit = compute_profit(
            PnLFigures(revenue=Decimal("10000"), cogs=Decimal("4000"), opex=Decimal("3000"))
        )

        assert profit.gross_profit == Decimal("6000.00")
        assert profit.gross_margin == Decimal("60.00")
        assert profit.net_profit == Decimal("3000.00")
        assert profit.net_margin == Decimal("30.00")

    def test_zero_revenue_has_zero_margins(self) -> None:
        profit = compute_profit(PnLFigures(revenue=Decimal("0"), cogs=Decimal("500"), opex=Decimal("0")))

        assert profit.net_profit == Decimal("-500.00")
        assert profit.gross_margin == 0
        assert profit.net_margin == 0

    def test_compare_metric(self) -> None:
        comparison = compare_metric(Decimal("1200"), Decimal("1000"))

        assert comparison.change == Decimal("200.00")
        assert comparison.change_percent == Decimal("20.00")

    def test_compare_metric_from_zero(self) -> None:
        assert compare_metric(Decimal("50"), Decimal("0")).change_percent == 0

    def test_margin_compares_in_points(self) -> None:
        comparison = compare_margin(Decimal("30"), Decimal("25"))

        assert comparison.change == Decimal("5.00")


class TestProfitAndLoss:
    @pytest_asyncio.fixture
    async def may_activity(
        self,
        create_test_invoice: Any,
        create_test_category: Any,
        create_test_expense: Any,
    ) -> None:
        fuel = await create_test_category(code="FUEL", name="Fuel", type="COGS")
        rent = await create_test_category(code="RENT", name="Rent", type="OPEX")
        await create_test_invoice(date(2024, 5, 2), [("Rental", "6000")])
        await create_test_invoice(date(2024, 5, 20), [("Rental", "4000")])
        await create_test_expense(date(2024, 5, 5), "4000", category_id=fuel.id)
        await create_test_expense(date(2024, 5, 6), "3000", category_id=rent.id)
        # Previous period (April)
        await create_test_invoice(date(2024, 4, 10), [("Rental", "8000")])

    @pytest.mark.asyncio
    async def test_statement(self, test_session: AsyncSession, may_activity: None) -> None:
        report = await get_profit_and_loss(
            test_session, date(2024, 5, 1), date(2024, 5, 31), PeriodType.WEEK
        )

        assert report.revenue.total == Decimal("10000.00")
        assert report.cogs.total == Decimal("4000.00")
        assert report.opex.total == Decimal("3000.00")
        assert report.profit.net_profit == (
            report.revenue.total - report.cogs.total - report.opex.total
        )
        assert report.profit.gross_margin == Decimal("60.00")
        assert report.comparison is None
        assert sum(b.amount for b in report.revenue.breakdown) == report.revenue.total

    @pytest.mark.asyncio
    async def test_previous_period_comparison(
        self, test_session: AsyncSession, may_activity: None
    ) -> None:
        report = await get_profit_and_loss(
            test_session,
            date(2024, 5, 1),
            date(2024, 5, 31),
            compare_with=ComparisonMode.PREVIOUS_PERIOD,
        )

        comparison = report.comparison
        assert comparison.previous_from == date(2024, 3, 31)
        assert comparison.previous_to == date(2024, 4, 30)
        assert comparison.revenue.previous == Decimal("8000.00")
        assert comparison.revenue.change == Decimal("2000.00")
        assert comparison.revenue.change_percent == Decimal("25.00")
        assert comparison.gross_margin.previous == Decimal("100.00")
        assert comparison.gross_margin.change == Decimal("-40.00")

    @pytest.mark.asyncio
    async def test_year_over_year_before_data_floor(
        self, test_session: AsyncSession, may_activity: None
    ) -> None:
        report = await get_profit_and_loss(
            test_session,
            date(2024, 5, 1),
            date(2024, 5, 31),
            compare_with=ComparisonMode.YEAR_OVER_YEAR,
            earliest_data_date=date(2024, 1, 1),
        )

        comparison = report.comparison
        assert comparison.previous_from == date(2023, 5, 1)
        assert comparison.before_data_floor is True
        assert comparison.revenue.previous == 0
        assert comparison.revenue.change_percent == 0
        assert comparison.net_margin.previous == 0

    @pytest.mark.asyncio
    async def test_empty_period(self, test_session: AsyncSession) -> None:
        report = await get_profit_and_loss(test_session, date(2024, 1, 1), date(2024, 1, 31))

        assert report.profit.net_profit == 0
        assert report.profit.net_margin == 0
