"""Tests for write-side invalidation and default categories."""

from typing import Any
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.cache import ReportCache, ReportFamily
from fleetbooks.models import ExpenseCategory
from fleetbooks.services import categories
from fleetbooks.services.categories import (
    DEFAULT_CATEGORIES,
    INVESTOR_PAYOUTS_CODE,
    ensure_default_categories,
    get_category_by_code,
)
from fleetbooks.services.invalidation import (
    DEPENDENT_FAMILIES,
    WriteEntity,
    invalidate_after_write,
)


async def fill(cache: ReportCache, *families: ReportFamily) -> None:
    async def compute() -> dict[str, int]:
        return {"value": 1}

    for family in families:
        await cache.get_or_compute(f"{family.value}:cached", 60, compute)


class TestDependentFamilies:
    def test_every_entity_mapped(self) -> None:
        assert set(DEPENDENT_FAMILIES) == set(WriteEntity)

    def test_invoice_touches_revenue_and_receivables(self) -> None:
        families = DEPENDENT_FAMILIES[WriteEntity.INVOICE]
        assert ReportFamily.REVENUE in families
        assert ReportFamily.AR in families
        assert ReportFamily.PNL in families

    def test_expense_touches_pnl_and_vehicle_performance(self) -> None:
        assert DEPENDENT_FAMILIES[WriteEntity.EXPENSE] == (
            ReportFamily.PNL,
            ReportFamily.VEHICLE_PERFORMANCE,
        )

    def test_booking_touches_both_performance_reports(self) -> None:
        families = DEPENDENT_FAMILIES[WriteEntity.BOOKING]
        assert ReportFamily.VEHICLE_PERFORMANCE in families
        assert ReportFamily.INVESTOR_PERFORMANCE in families

    def test_every_family_invalidated_by_some_write(self) -> None:
        covered = {family for families in DEPENDENT_FAMILIES.values() for family in families}
        assert covered == set(ReportFamily)


class TestInvalidateAfterWrite:
    @pytest.mark.asyncio
    async def test_only_dependent_families_dropped(
        self, report_cache: ReportCache, test_redis: Any
    ) -> None:
        await fill(report_cache, ReportFamily.AR, ReportFamily.PNL, ReportFamily.REVENUE)

        families = await invalidate_after_write(report_cache, WriteEntity.PAYMENT, entity_id=7)

        assert families == [ReportFamily.AR, ReportFamily.INVESTOR_PERFORMANCE]
        assert await test_redis.get("test-report:ar:cached") is None
        assert await test_redis.get("test-report:pnl:cached") is not None
        assert await test_redis.get("test-report:revenue:cached") is not None

    @pytest.mark.asyncio
    async def test_multiple_entities_deduplicated(self, report_cache: ReportCache) -> None:
        families = await invalidate_after_write(
            report_cache, WriteEntity.PAYOUT, WriteEntity.EXPENSE
        )

        assert families == [
            ReportFamily.PNL,
            ReportFamily.INVESTORS,
            ReportFamily.PAYOUTS,
            ReportFamily.INVESTOR_PERFORMANCE,
            ReportFamily.VEHICLE_PERFORMANCE,
        ]

    @pytest.mark.asyncio
    async def test_accepts_plain_strings(self, report_cache: ReportCache) -> None:
        assert await invalidate_after_write(report_cache, "maintenance") == [ReportFamily.PNL]


class TestDefaultCategories:
    @pytest.mark.asyncio
    async def test_creates_all_then_nothing(self, test_session: AsyncSession) -> None:
        first = await ensure_default_categories(test_session)
        second = await ensure_default_categories(test_session)

        assert len(first) == len(DEFAULT_CATEGORIES)
        assert second == []
        count = await test_session.scalar(select(func.count()).select_from(ExpenseCategory))
        assert count == len(DEFAULT_CATEGORIES)

    @pytest.mark.asyncio
    async def test_existing_category_left_untouched(
        self, test_session: AsyncSession, create_test_category: Any
    ) -> None:
        await create_test_category(code="RENT", name="Office rent", is_active=False)

        created = await ensure_default_categories(test_session)

        assert "RENT" not in created
        rent = await get_category_by_code(test_session, "RENT")
        assert rent.name == "Office rent"
        assert rent.is_active is False

    @pytest.mark.asyncio
    async def test_code_inserted_concurrently_by_another_worker(
        self, test_session: AsyncSession, create_test_category: Any
    ) -> None:
        await create_test_category(code="RENT", name="Office rent")
        real_existing_codes = categories._existing_codes
        reads = 0

        async def read_before_other_worker(db: AsyncSession) -> set[str]:
            nonlocal reads
            reads += 1
            if reads == 1:
                return set()
            return await real_existing_codes(db)

        with patch.object(categories, "_existing_codes", new=read_before_other_worker):
            created = await ensure_default_categories(test_session)

        assert reads == 2
        assert "RENT" not in created
        assert len(created) == len(DEFAULT_CATEGORIES) - 1
        count = await test_session.scalar(select(func.count()).select_from(ExpenseCategory))
        assert count == len(DEFAULT_CATEGORIES)
        rent = await get_category_by_code(test_session, "RENT")
        assert rent.name == "Office rent"

    @pytest.mark.asyncio
    async def test_investor_payouts_is_cogs(self, test_session: AsyncSession) -> None:
        await ensure_default_categories(test_session)

        category = await get_category_by_code(test_session, INVESTOR_PAYOUTS_CODE)

        assert category.type == "COGS"
