"""
Test fixtures for the delivery zones backend.

Provides:
- In-memory SQLite database for isolated testing
- Async test client with proper session management
- Factories for zones, tiers, schedules, exceptions and district assignments
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

os.environ.setdefault("ADMIN_SECRET", "test_admin_secret")
# DB settings required by Settings validation (tests use SQLite in-memory, these are not actually used)
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test")
# Development mode for tests (disables ALLOWED_ORIGINS requirement)
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DELIVERY_TIMEZONE", "America/Lima")
# In-memory SQLite shares one connection; keep revalidation workers sequential
os.environ.setdefault("REVALIDATION_CONCURRENCY", "1")

import datetime
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from delivery_backend.app.core.base import Base
from delivery_backend.app.core.limiter import limiter
from delivery_backend.app.main import app
from delivery_backend.app.api.deps import get_cache, get_session, get_session_factory
from delivery_backend.app.models.zone import (
    CostTier,
    DateException,
    DeliveryZone,
    District,
    DistrictAssignment,
    WeeklySchedule,
)
from delivery_backend.app.models.validated_address import ValidatedAddress  # noqa: F401

ADMIN_HEADERS = {"X-Admin-Token": os.environ["ADMIN_SECRET"]}

# Zone center used across tests (Lima)
CENTER = (-12.10, -77.03)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def point_north_of(origin, km: float):
    """Point `km` kilometers due north of `origin` (1 degree of latitude = 6371*pi/180 km)."""
    return (origin[0] + km / 111.19492664455873, origin[1])


class MockCacheService:
    """Mock Redis cache for testing without actual Redis."""

    def __init__(self):
        self._cache = {}

    async def get(self, key: str):
        return self._cache.get(key)

    async def set(self, key: str, value, ttl: Optional[int] = None):
        self._cache[key] = value

    async def delete(self, key: str):
        self._cache.pop(key, None)

    async def get_zones(self):
        return self._cache.get("zones:active")

    async def set_zones(self, zones):
        self._cache["zones:active"] = zones

    async def get_zone(self, zone_id: int):
        return self._cache.get(f"zones:detail:{zone_id}")

    async def set_zone(self, zone_id: int, zone):
        self._cache[f"zones:detail:{zone_id}"] = zone

    async def invalidate_zones(self, zone_id: Optional[int] = None):
        self._cache.pop("zones:active", None)
        if zone_id is not None:
            self._cache.pop(f"zones:detail:{zone_id}", None)
        else:
            for key in [k for k in self._cache if k.startswith("zones:detail:")]:
                self._cache.pop(key, None)


@pytest.fixture(autouse=True)
def disable_rate_limit():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture(scope="function")
async def test_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.
    Creates all tables before and drops after each test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def mock_cache() -> MockCacheService:
    return MockCacheService()


@pytest.fixture
async def client(
    test_session: AsyncSession,
    mock_cache: MockCacheService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.
    Overrides database, session factory and cache dependencies.
    """
    async def override_get_session():
        async with TestSessionLocal() as session:
            yield session

    async def override_get_cache():
        yield mock_cache

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal
    app.dependency_overrides[get_cache] = override_get_cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test Data Factories ---

async def create_zone(session: AsyncSession, **overrides) -> DeliveryZone:
    """Radius zone of 10 km around CENTER with base cost 10 unless overridden."""
    data = {
        "name": "Zona Centro",
        "slug": "zona-centro",
        "center_lat": CENTER[0],
        "center_lng": CENTER[1],
        "radius_km": 10,
        "base_cost": Decimal("10.00"),
        "default_eta_minutes": 30,
        "always_open": True,
        "is_active": True,
    }
    data.update(overrides)
    zone = DeliveryZone(**data)
    session.add(zone)
    await session.commit()
    return zone


async def add_tier(session: AsyncSession, zone: DeliveryZone, start, end, cost, extra_minutes=None, is_active=True) -> CostTier:
    tier = CostTier(
        zone_id=zone.id,
        distance_from_km=start,
        distance_to_km=end,
        additional_cost=cost,
        extra_time_minutes=extra_minutes,
        is_active=is_active,
    )
    session.add(tier)
    await session.commit()
    return tier


async def add_schedule(session: AsyncSession, zone: DeliveryZone, weekday: int, start=None, end=None, full_day=False) -> WeeklySchedule:
    schedule = WeeklySchedule(
        zone_id=zone.id,
        weekday=weekday,
        start_time=start,
        end_time=end,
        full_day=full_day,
    )
    session.add(schedule)
    await session.commit()
    return schedule


async def add_exception(session: AsyncSession, zone: DeliveryZone, day: datetime.date, type_: str, reason="Test", **fields) -> DateException:
    exception = DateException(zone_id=zone.id, date=day, type=type_, reason=reason, **fields)
    session.add(exception)
    await session.commit()
    return exception


async def add_district(session: AsyncSession, district_id: int, name: str = "Lince", is_active: bool = True) -> District:
    district = District(id=district_id, name=name, is_active=is_active)
    session.add(district)
    await session.commit()
    return district


async def assign_district(session: AsyncSession, zone: DeliveryZone, district_id: int, priority: int = 1, **fields) -> DistrictAssignment:
    assignment = DistrictAssignment(zone_id=zone.id, district_id=district_id, priority=priority, **fields)
    session.add(assignment)
    await session.commit()
    return assignment


@pytest.fixture
async def zone(test_session: AsyncSession) -> DeliveryZone:
    return await create_zone(test_session)


@pytest.fixture
def session_factory(test_session: AsyncSession) -> async_sessionmaker:
    """Session factory bound to the test database (one session per revalidated address)."""
    return TestSessionLocal
