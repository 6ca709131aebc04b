"""Values offered by the report filter pickers."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbooks.models import Booking, Vehicle
from fleetbooks.schemas.reports import FilterOptions


async def get_filter_options(db: AsyncSession) -> FilterOptions:
    vehicle_branches = await db.execute(select(Vehicle.current_branch).distinct())
    pickup_branches = await db.execute(select(Booking.pickup_branch).distinct())
    categories = await db.execute(select(Vehicle.category).distinct())

    branches = {b for b in vehicle_branches.scalars().all() if b}
    branches.update(b for b in pickup_branches.scalars().all() if b)
    return FilterOptions(
        branches=sorted(branches),
        vehicle_categories=sorted(c for c in categories.scalars().all() if c),
    )
