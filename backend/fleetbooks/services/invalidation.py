"""Write-side cache invalidation.

Every write path whose data a report reads must call
:func:`invalidate_after_write` after committing and before reporting
success, so the next read cannot be served a pre-write report.
"""

from enum import Enum

import structlog

from fleetbooks.core.cache import ReportCache, ReportFamily

logger = structlog.get_logger()


class WriteEntity(str, Enum):
    INVOICE = "invoice"
    EXPENSE = "expense"
    PAYMENT = "payment"
    PAYOUT = "payout"
    BOOKING = "booking"
    MAINTENANCE = "maintenance"


DEPENDENT_FAMILIES: dict[WriteEntity, tuple[ReportFamily, ...]] = {
    WriteEntity.INVOICE: (
        ReportFamily.REVENUE,
        ReportFamily.PNL,
        ReportFamily.AR,
        ReportFamily.INVESTORS,
        ReportFamily.PAYOUTS,
        ReportFamily.UTILIZATION,
        ReportFamily.VEHICLE_PERFORMANCE,
        ReportFamily.INVESTOR_PERFORMANCE,
    ),
    WriteEntity.EXPENSE: (ReportFamily.PNL, ReportFamily.VEHICLE_PERFORMANCE),
    WriteEntity.PAYMENT: (ReportFamily.AR, ReportFamily.INVESTOR_PERFORMANCE),
    WriteEntity.PAYOUT: (
        ReportFamily.PNL,
        ReportFamily.INVESTORS,
        ReportFamily.PAYOUTS,
        ReportFamily.INVESTOR_PERFORMANCE,
    ),
    WriteEntity.BOOKING: (
        ReportFamily.REVENUE,
        ReportFamily.INVESTORS,
        ReportFamily.PAYOUTS,
        ReportFamily.UTILIZATION,
        ReportFamily.FILTERS,
        ReportFamily.VEHICLE_PERFORMANCE,
        ReportFamily.INVESTOR_PERFORMANCE,
    ),
    WriteEntity.MAINTENANCE: (ReportFamily.PNL,),
}


async def invalidate_after_write(
    cache: ReportCache, *entities: WriteEntity, entity_id: int | None = None
) -> list[ReportFamily]:
    """Invalidate every report family depending on the written entities.

    Returns:
        The families invalidated, in a stable order
    """
    families: list[ReportFamily] = []
    for entity in entities:
        for family in DEPENDENT_FAMILIES[WriteEntity(entity)]:
            if family not in families:
                families.append(family)

    deleted = 0
    for family in families:
        deleted += await cache.invalidate(family)

    logger.info(
        "report_cache_invalidated",
        entities=[WriteEntity(e).value for e in entities],
        entity_id=entity_id,
        families=[f.value for f in families],
        deleted=deleted,
    )
    return families
