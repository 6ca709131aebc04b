"""Tests for the investor payout calculator."""

from datetime import date
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.exceptions import UnknownEntityError, ValidationFailedError
from fleetbooks.services.reports.payouts import (
    get_investor_payout_report,
    preview_investor_payout,
    split_commission,
)

JUNE_1 = date(2024, 6, 1)
JUNE_30 = date(2024, 6, 30)


class TestSplitCommission:
    def test_scenario(self) -> None:
        totals = split_commission([Decimal("5000")], Decimal("20"))

        assert totals.commission_amount == Decimal("1000.00")
        assert totals.net_payout == Decimal("4000.00")

    @pytest.mark.parametrize("percent", ["0", "12.5", "33.33", "100"])
    def test_net_plus_commission_is_total(self, percent: str) -> None:
        totals = split_commission([Decimal("1234.56"), Decimal("0.01")], Decimal(percent))

        assert totals.net_payout + totals.commission_amount == totals.total_revenue
        assert totals.commission_amount == (
            totals.total_revenue * Decimal(percent) / 100
        ).quantize(Decimal("0.01"), rounding="ROUND_HALF_UP")


class TestPreviewInvestorPayout:
    @pytest.mark.asyncio
    async def test_breakdown_per_vehicle(
        self,
        test_session: AsyncSession,
        create_test_investor: Any,
        create_test_vehicle: Any,
        create_test_booking: Any,
        create_test_invoice: Any,
    ) -> None:
        investor = await create_test_investor()
        car = await create_test_vehicle(ownership_type="INVESTOR", investor_id=investor.id)
        van = await create_test_vehicle(
            ownership_type="INVESTOR", investor_id=investor.id, category="VAN"
        )
        idle = await create_test_vehicle(ownership_type="INVESTOR", investor_id=investor.id)

        invoiced = await create_test_booking(date(2024, 6, 3), date(2024, 6, 5), vehicle_id=car.id)
        await create_test_invoice(
            date(2024, 6, 5), [("Rental", "3200"), ("Discount", "-200")], booking_id=invoiced.id
        )
        # Not invoiced yet: falls back to the booking amounts
        await create_test_booking(
            date(2024, 6, 10),
            date(2024, 6, 12),
            vehicle_id=van.id,
            base_amount=Decimal("2100"),
            discount_amount=Decimal("100"),
        )
        # Cancelled and out-of-period bookings are ignored
        await create_test_booking(
            date(2024, 6, 15), vehicle_id=car.id, status="CANCELLED", base_amount=Decimal("999")
        )
        await create_test_booking(date(2024, 7, 1), vehicle_id=car.id, base_amount=Decimal("999"))

        preview = await preview_investor_payout(
            test_session, investor.id, JUNE_1, JUNE_30, commission_percent=20
        )

        assert preview.total_revenue == Decimal("5000.00")
        assert preview.commission_amount == Decimal("1000.00")
        assert preview.net_payout == Decimal("4000.00")
        assert [row.vehicle_id for row in preview.breakdown] == [car.id, van.id]
        assert idle.id not in [row.vehicle_id for row in preview.breakdown]
        assert preview.total_revenue == sum(row.revenue for row in preview.breakdown)

    @pytest.mark.asyncio
    async def test_investor_without_vehicles_is_zero(
        self, test_session: AsyncSession, create_test_investor: Any
    ) -> None:
        investor = await create_test_investor()

        preview = await preview_investor_payout(test_session, investor.id, JUNE_1, JUNE_30)

        assert preview.total_revenue == 0
        assert preview.net_payout == 0
        assert preview.breakdown == []
        assert preview.commission_percent == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_branch_filter(
        self,
        test_session: AsyncSession,
        create_test_investor: Any,
        create_test_vehicle: Any,
        create_test_booking: Any,
    ) -> None:
        investor = await create_test_investor()
        dxb = await create_test_vehicle(
            ownership_type="INVESTOR", investor_id=investor.id, current_branch="DXB"
        )
        auh = await create_test_vehicle(
            ownership_type="INVESTOR", investor_id=investor.id, current_branch="AUH"
        )
        await create_test_booking(date(2024, 6, 3), vehicle_id=dxb.id, base_amount=Decimal("100"))
        await create_test_booking(date(2024, 6, 3), vehicle_id=auh.id, base_amount=Decimal("300"))

        preview = await preview_investor_payout(
            test_session, investor.id, JUNE_1, JUNE_30, branch_id="AUH"
        )

        assert preview.total_revenue == Decimal("300.00")

    @pytest.mark.asyncio
    async def test_unknown_investor(self, test_session: AsyncSession) -> None:
        with pytest.raises(UnknownEntityError):
            await preview_investor_payout(test_session, 999, JUNE_1, JUNE_30)

    @pytest.mark.asyncio
    async def test_commission_out_of_range(
        self, test_session: AsyncSession, create_test_investor: Any
    ) -> None:
        investor = await create_test_investor()

        with pytest.raises(ValidationFailedError):
            await preview_investor_payout(
                test_session, investor.id, JUNE_1, JUNE_30, commission_percent=120
            )


class TestInvestorPayoutReport:
    @pytest.mark.asyncio
    async def test_one_row_per_active_investor(
        self,
        test_session: AsyncSession,
        create_test_investor: Any,
        create_test_vehicle: Any,
        create_test_booking: Any,
    ) -> None:
        alice = await create_test_investor(name="Alice")
        bob = await create_test_investor(name="Bob")
        await create_test_investor(name="Idle")
        a_car = await create_test_vehicle(ownership_type="INVESTOR", investor_id=alice.id)
        b_car = await create_test_vehicle(ownership_type="INVESTOR", investor_id=bob.id)
        company_car = await create_test_vehicle()
        await create_test_booking(date(2024, 6, 2), vehicle_id=a_car.id, base_amount=Decimal("1000"))
        await create_test_booking(date(2024, 6, 9), vehicle_id=a_car.id, base_amount=Decimal("500"))
        await create_test_booking(date(2024, 6, 4), vehicle_id=b_car.id, base_amount=Decimal("2000"))
        await create_test_booking(
            date(2024, 6, 4), vehicle_id=company_car.id, base_amount=Decimal("9999")
        )

        report = await get_investor_payout_report(test_session, JUNE_1, JUNE_30, 10)

        assert [row.investor_name for row in report.investors] == ["Bob", "Alice"]
        alice_row = report.investors[1]
        assert alice_row.revenue == Decimal("1500.00")
        assert alice_row.commission == Decimal("150.00")
        assert alice_row.net_amount == Decimal("1350.00")
        assert alice_row.bookings == 2
        assert report.summary.investor_count == 2
        assert report.summary.total_revenue == Decimal("3500.00")
        assert report.summary.total_payout == Decimal("3150.00")
