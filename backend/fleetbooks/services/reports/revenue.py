"""Revenue aggregation by period bucket and grouping dimension."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.core.config import settings
from fleetbooks.schemas.reports import RevenueBucket, RevenueGroup, RevenueReport, RevenueSummary
from fleetbooks.services.reports.money import ZERO, round2, safe_divide
from fleetbooks.services.reports.periods import (
    Granularity,
    PeriodBucket,
    bucket_periods,
    find_bucket,
)
from fleetbooks.services.reports.records import (
    ReportWarnings,
    RevenueRecord,
    load_revenue_records,
)

logger = structlog.get_logger()


class RevenueDimension(str, Enum):
    """Grouping for the revenue breakdown."""

    BRANCH = "branch"
    CATEGORY = "category"
    CUSTOMER_TYPE = "customer_type"


_DIMENSION_FIELDS = {
    RevenueDimension.BRANCH: "branch_id",
    RevenueDimension.CATEGORY: "vehicle_category",
    RevenueDimension.CUSTOMER_TYPE: "customer_type",
}


@dataclass
class RevenueTally:
    """Running totals. Rounded only when reported."""

    gross: Decimal = ZERO
    discounts: Decimal = ZERO
    tax: Decimal = ZERO
    net: Decimal = ZERO
    fines: Decimal = ZERO
    bookings: int = 0

    def add(self, record: RevenueRecord) -> None:
        self.gross += record.gross_amount
        self.discounts += record.discount_amount
        self.tax += record.tax_amount
        self.net += record.net_amount
        self.fines += record.fines_amount
        self.bookings += 1


@dataclass
class RevenueAggregate:
    total: RevenueTally
    buckets: list[tuple[PeriodBucket, RevenueTally]]
    groups: dict[str, RevenueTally]
    ownership: dict[str, RevenueTally]


def aggregate_revenue(
    records: Iterable[RevenueRecord],
    buckets: list[PeriodBucket],
    dimension: RevenueDimension = RevenueDimension.BRANCH,
) -> RevenueAggregate:
    """Accumulate records into the whole range, each bucket and each group.

    Records dated outside the buckets are ignored, so every counted record
    lands in exactly one bucket and the bucket totals add up to the summary.
    """
    field = _DIMENSION_FIELDS[RevenueDimension(dimension)]
    starts = [b.start for b in buckets]
    per_bucket = {b.label: RevenueTally() for b in buckets}

    aggregate = RevenueAggregate(
        total=RevenueTally(),
        buckets=[(b, per_bucket[b.label]) for b in buckets],
        groups={},
        ownership={},
    )
    for record in records:
        bucket = find_bucket(buckets, record.effective_date, starts)
        if bucket is None:
            continue
        aggregate.total.add(record)
        per_bucket[bucket.label].add(record)
        aggregate.groups.setdefault(getattr(record, field), RevenueTally()).add(record)
        aggregate.ownership.setdefault(record.ownership_type, RevenueTally()).add(record)
    return aggregate


def _groups(tallies: dict[str, RevenueTally]) -> list[RevenueGroup]:
    ordered = sorted(tallies.items(), key=lambda item: (-item[1].net, item[0]))
    return [
        RevenueGroup(
            key=key,
            gross_revenue=round2(tally.gross),
            net_revenue=round2(tally.net),
            booking_count=tally.bookings,
        )
        for key, tally in ordered
    ]


def build_revenue_report(
    aggregate: RevenueAggregate,
    date_from: date,
    date_to: date,
    granularity: Granularity,
    dimension: RevenueDimension,
    warnings: list[str] | None = None,
    currency: str | None = None,
) -> RevenueReport:
    total = aggregate.total
    return RevenueReport(
        currency=currency or settings.DEFAULT_CURRENCY,
        date_from=date_from,
        date_to=date_to,
        granularity=Granularity(granularity).value,
        dimension=RevenueDimension(dimension).value,
        summary=RevenueSummary(
            gross_revenue=round2(total.gross),
            discounts=round2(total.discounts),
            tax=round2(total.tax),
            net_revenue=round2(total.net),
            fines=round2(total.fines),
            booking_count=total.bookings,
            average_booking_value=round2(safe_divide(total.net, total.bookings)),
        ),
        by_period=[
            RevenueBucket(
                label=bucket.label,
                start=bucket.start,
                end=bucket.end,
                gross_revenue=round2(tally.gross),
                discounts=round2(tally.discounts),
                tax=round2(tally.tax),
                net_revenue=round2(tally.net),
                booking_count=tally.bookings,
            )
            for bucket, tally in aggregate.buckets
        ],
        breakdown=_groups(aggregate.groups),
        by_ownership=_groups(aggregate.ownership),
        warnings=warnings or [],
    )


async def get_revenue_report(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    granularity: Granularity = Granularity.DAY,
    dimension: RevenueDimension = RevenueDimension.BRANCH,
    branch_id: str | None = None,
    vehicle_category: str | None = None,
    customer_type: str | None = None,
) -> RevenueReport:
    """Revenue summary, per-bucket series and grouped breakdown for a range.

    Raises:
        InvalidRangeError: if the range is inverted.
    """
    buckets = bucket_periods(date_from, date_to, granularity)
    warnings = ReportWarnings("revenue")

    records = await load_revenue_records(
        db,
        date_from,
        date_to,
        branch_id=branch_id,
        vehicle_category=vehicle_category,
        customer_type=customer_type,
        warnings=warnings,
    )
    aggregate = aggregate_revenue(records, buckets, dimension)

    logger.info(
        "revenue_report_computed",
        date_from=date_from.isoformat(),
        date_to=date_to.isoformat(),
        records=len(records),
        buckets=len(buckets),
    )
    return build_revenue_report(
        aggregate, date_from, date_to, granularity, dimension, warnings.as_list()
    )
