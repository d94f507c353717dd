"""
Pytest configuration and fixtures for async database testing.

Tests run against a throwaway SQLite database (aiosqlite) created per test.
Point DATABASE_URL at a local PostgreSQL test database to run the same suite
against asyncpg; tables are dropped and recreated for every test either way.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SEED_ON_STARTUP", "false")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("RESEND_FROM", "")
os.environ.setdefault("BUSINESS_TIMEZONE", "America/New_York")

from dataclasses import dataclass
from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# Verify we're NOT pointing the suite at a production database
if TEST_DATABASE_URL and "prod" in TEST_DATABASE_URL.lower():
    raise RuntimeError(
        f"DANGER: Tests are configured to use a production database!\n"
        f"TEST_DATABASE_URL: {TEST_DATABASE_URL}"
    )

os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL or "sqlite+aiosqlite:///:memory:")

from luxe_booking.core.db import Base, get_session  # noqa: E402
from luxe_booking.models import Service, ServiceCategory, Staff, StaffService  # noqa: E402
from luxe_booking.working_hours import build_calendar  # noqa: E402


def next_weekday(weekday: int, weeks_ahead: int = 2) -> date:
    """A date on ``weekday`` (0 = Monday) comfortably in the future."""
    start = date.today() + timedelta(weeks=weeks_ahead)
    return start + timedelta(days=(weekday - start.weekday()) % 7)


@dataclass
class Catalog:
    cut: Service
    bridal: Service
    beard: Service
    stylist: Staff
    barber: Staff


@pytest.fixture(scope="function")
async def session_factory(tmp_path):
    """
    Create an engine and fresh schema for one test.

    Each test gets its own database so committed rows never leak between tests.
    """
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}"
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
async def async_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def catalog(async_session) -> Catalog:
    """Two services, a stylist working Mon-Sat 09:00-18:00 and a barber who only cuts beards."""
    cut = Service(
        name="Deep Conditioning Treatment",
        description="Moisture therapy",
        duration_minutes=60,
        price_cents=8500,
        category=ServiceCategory.HAIR_TREATMENTS,
    )
    bridal = Service(
        name="Bridal Hair & Makeup",
        description="Bridal package",
        duration_minutes=240,
        price_cents=45000,
        category=ServiceCategory.SPECIAL_OCCASIONS,
    )
    beard = Service(
        name="Men's Cut & Style",
        description="Cut with beard trim",
        duration_minutes=45,
        price_cents=6500,
        category=ServiceCategory.MENS_SERVICES,
    )
    stylist = Staff(
        name="Isabella Martinez",
        title="Master Colorist",
        email="isabella@example.com",
        working_hours=build_calendar("09:00", "18:00", days_off=("sunday",)),
    )
    barber = Staff(
        name="Marcus Rodriguez",
        title="Barber",
        email="marcus@example.com",
        working_hours=build_calendar("08:00", "16:00", days_off=("saturday", "sunday")),
    )
    async_session.add_all([cut, bridal, beard, stylist, barber])
    await async_session.flush()
    async_session.add(StaffService(staff_id=barber.id, service_id=beard.id))
    await async_session.commit()
    return Catalog(cut=cut, bridal=bridal, beard=beard, stylist=stylist, barber=barber)


@pytest.fixture(scope="function")
async def client(session_factory):
    """
    FastAPI AsyncClient whose requests each get their own session from the
    test database, like production requests do.
    """
    from luxe_booking.main import app

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def booking_payload(catalog: Catalog, day: date, time: str = "10:00", **overrides) -> dict:
    payload = {
        "serviceId": catalog.cut.id,
        "staffId": catalog.stylist.id,
        "customerName": "Jane Doe",
        "customerEmail": "Jane@Example.com",
        "customerPhone": "(555) 000-1111",
        "date": day.isoformat(),
        "time": time,
        "notes": "First visit",
    }
    payload.update(overrides)
    return payload
