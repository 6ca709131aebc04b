"""Default expense categories."""

import asyncio

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.models import ExpenseCategory, ExpenseCategoryType

logger = structlog.get_logger()

INVESTOR_PAYOUTS_CODE = "INVESTOR_PAYOUTS"

DEFAULT_CATEGORIES: tuple[tuple[str, str, ExpenseCategoryType], ...] = (
    ("SALARIES", "Salaries", ExpenseCategoryType.OPEX),
    ("RENT", "Rent", ExpenseCategoryType.OPEX),
    ("UTILITIES", "Utilities", ExpenseCategoryType.OPEX),
    ("MARKETING", "Marketing", ExpenseCategoryType.OPEX),
    ("SOFTWARE", "Software", ExpenseCategoryType.OPEX),
    ("FUEL", "Fuel", ExpenseCategoryType.COGS),
    ("MAINTENANCE", "Maintenance", ExpenseCategoryType.COGS),
    (INVESTOR_PAYOUTS_CODE, "Investor Payouts", ExpenseCategoryType.COGS),
)

_ensure_lock = asyncio.Lock()


async def _existing_codes(db: AsyncSession) -> set[str]:
    result = await db.execute(
        select(ExpenseCategory.code).where(
            ExpenseCategory.code.in_([code for code, _, _ in DEFAULT_CATEGORIES])
        )
    )
    return set(result.scalars().all())


async def _insert_missing(db: AsyncSession) -> list[str]:
    existing = await _existing_codes(db)
    created = []
    for code, name, kind in DEFAULT_CATEGORIES:
        if code in existing:
            continue
        db.add(ExpenseCategory(code=code, name=name, type=kind.value, is_active=True))
        created.append(code)
    if created:
        await db.commit()
    return created


async def ensure_default_categories(db: AsyncSession) -> list[str]:
    """Create any missing default categories. Safe to call repeatedly.

    Existing categories are left untouched, including their active flag.
    Workers starting together may race on the same codes; the loser rolls
    back and inserts whatever is still missing.

    Returns:
        Codes of the categories created
    """
    async with _ensure_lock:
        try:
            created = await _insert_missing(db)
        except IntegrityError:
            await db.rollback()
            logger.info("default_categories_conflict")
            created = await _insert_missing(db)

        if created:
            logger.info("default_categories_created", codes=created)
        return created


async def get_category_by_code(db: AsyncSession, code: str) -> ExpenseCategory | None:
    result = await db.execute(select(ExpenseCategory).where(ExpenseCategory.code == code))
    return result.scalar_one_or_none()
