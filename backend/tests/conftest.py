"""Pytest configuration and fixtures for backend tests."""

import itertools
from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from fakeredis import aioredis as fakeredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fleetbooks.core.cache import ReportCache, get_report_cache
from fleetbooks.core.limiter import limiter
from fleetbooks.db.base import Base
from fleetbooks.db.session import get_db, get_session_factory
from fleetbooks.main import app
from fleetbooks.models import (
    Booking,
    Customer,
    Expense,
    ExpenseCategory,
    InvestorProfile,
    Invoice,
    InvoiceItem,
    MaintenanceRecord,
    Payment,
    Vehicle,
)

# A single shared in-memory connection, so every session sees the same data
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_sequence = itertools.count(1)


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[Any, None]:
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection: Any, _connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: Any) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_redis() -> AsyncGenerator[Any, None]:
    """Create fake Redis client for testing."""
    redis_client = fakeredis.FakeRedis(decode_responses=True)
    yield redis_client
    await redis_client.flushall()
    await redis_client.aclose()


@pytest.fixture
def report_cache(test_redis: Any) -> ReportCache:
    """Report cache backed by fake Redis."""

    async def _get_redis() -> Any:
        return test_redis

    return ReportCache(redis_getter=_get_redis, prefix="test-report", default_ttl=60)


@pytest_asyncio.fixture(scope="function")
async def test_client(
    test_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    report_cache: ReportCache,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with dependency overrides."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_report_cache] = lambda: report_cache
    limiter.reset()

    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def at(day: date, hour: int = 10) -> datetime:
    """Aware UTC timestamp on ``day``."""
    return datetime(day.year, day.month, day.day, hour, tzinfo=UTC)


@pytest_asyncio.fixture
async def create_test_investor(test_session: AsyncSession) -> Any:
    """Factory fixture to create investors."""

    async def _create_investor(**kwargs: Any) -> InvestorProfile:
        data = {"name": "Test Investor", "email": "investor@example.com", "is_active": True}
        data.update(kwargs)
        investor = InvestorProfile(**data)
        test_session.add(investor)
        await test_session.commit()
        await test_session.refresh(investor)
        return investor

    return _create_investor


@pytest_asyncio.fixture
async def create_test_vehicle(test_session: AsyncSession) -> Any:
    """Factory fixture to create vehicles."""

    async def _create_vehicle(**kwargs: Any) -> Vehicle:
        n = next(_sequence)
        data = {
            "plate_number": f"DXB-{n:05d}",
            "brand": "Toyota",
            "model": "Corolla",
            "category": "ECONOMY",
            "ownership_type": "COMPANY",
            "current_branch": "DXB",
            "status": "AVAILABLE",
        }
        data.update(kwargs)
        vehicle = Vehicle(**data)
        test_session.add(vehicle)
        await test_session.commit()
        await test_session.refresh(vehicle)
        return vehicle

    return _create_vehicle


@pytest_asyncio.fixture
async def create_test_customer(test_session: AsyncSession) -> Any:
    """Factory fixture to create customers."""

    async def _create_customer(**kwargs: Any) -> Customer:
        data = {"name": "Jane Renter", "customer_type": "INDIVIDUAL"}
        data.update(kwargs)
        customer = Customer(**data)
        test_session.add(customer)
        await test_session.commit()
        await test_session.refresh(customer)
        return customer

    return _create_customer


@pytest_asyncio.fixture
async def create_test_booking(test_session: AsyncSession) -> Any:
    """Factory fixture to create bookings.

    ``start``/``end`` take dates and are converted to 10:00 UTC.
    """

    async def _create_booking(
        start: date, end: date | None = None, **kwargs: Any
    ) -> Booking:
        data = {
            "pickup_branch": "DXB",
            "start_at": at(start),
            "end_at": at(end) if end else None,
            "status": "CONFIRMED",
            "base_amount": Decimal("0"),
            "discount_amount": Decimal("0"),
            "tax_amount": Decimal("0"),
            "total_amount": Decimal("0"),
        }
        data.update(kwargs)
        booking = Booking(**data)
        test_session.add(booking)
        await test_session.commit()
        await test_session.refresh(booking)
        return booking

    return _create_booking


@pytest_asyncio.fixture
async def create_test_invoice(test_session: AsyncSession) -> Any:
    """Factory fixture to create invoices with line items.

    ``items`` is a list of ``(label, amount)`` pairs.
    """

    async def _create_invoice(
        issue_date: date,
        items: list[tuple[str, str | Decimal]] | None = None,
        **kwargs: Any,
    ) -> Invoice:
        n = next(_sequence)
        line_items = [
            InvoiceItem(label=label, amount=Decimal(str(amount))) for label, amount in items or []
        ]
        data = {
            "invoice_number": f"INV-{n:06d}",
            "issue_date": issue_date,
            "due_date": issue_date,
            "tax_amount": Decimal("0"),
            "total": sum((item.amount for item in line_items), Decimal("0")),
            "status": "ISSUED",
        }
        data.update(kwargs)
        invoice = Invoice(**data)
        invoice.items = line_items
        test_session.add(invoice)
        await test_session.commit()
        await test_session.refresh(invoice)
        return invoice

    return _create_invoice


@pytest_asyncio.fixture
async def create_test_payment(test_session: AsyncSession) -> Any:
    """Factory fixture to create payments."""

    async def _create_payment(**kwargs: Any) -> Payment:
        data = {"amount": Decimal("0"), "method": "CARD", "status": "SUCCESS"}
        data.update(kwargs)
        payment = Payment(**data)
        test_session.add(payment)
        await test_session.commit()
        await test_session.refresh(payment)
        return payment

    return _create_payment


@pytest_asyncio.fixture
async def create_test_category(test_session: AsyncSession) -> Any:
    """Factory fixture to create expense categories."""

    async def _create_category(**kwargs: Any) -> ExpenseCategory:
        n = next(_sequence)
        data = {"code": f"CAT_{n}", "name": f"Category {n}", "type": "OPEX", "is_active": True}
        data.update(kwargs)
        category = ExpenseCategory(**data)
        test_session.add(category)
        await test_session.commit()
        await test_session.refresh(category)
        return category

    return _create_category


@pytest_asyncio.fixture
async def create_test_expense(test_session: AsyncSession) -> Any:
    """Factory fixture to create expenses."""

    async def _create_expense(date_incurred: date, amount: str | Decimal, **kwargs: Any) -> Expense:
        data = {
            "description": "Test expense",
            "amount": Decimal(str(amount)),
            "currency": "AED",
            "date_incurred": date_incurred,
            "is_deleted": False,
        }
        data.update(kwargs)
        expense = Expense(**data)
        test_session.add(expense)
        await test_session.commit()
        await test_session.refresh(expense)
        return expense

    return _create_expense


@pytest_asyncio.fixture
async def create_test_maintenance(test_session: AsyncSession) -> Any:
    """Factory fixture to create maintenance records."""

    async def _create_maintenance(
        service_date: date, cost: str | Decimal, **kwargs: Any
    ) -> MaintenanceRecord:
        data = {
            "type": "SERVICE",
            "status": "COMPLETED",
            "service_date": service_date,
            "cost": Decimal(str(cost)),
        }
        data.update(kwargs)
        record = MaintenanceRecord(**data)
        test_session.add(record)
        await test_session.commit()
        await test_session.refresh(record)
        return record

    return _create_maintenance
