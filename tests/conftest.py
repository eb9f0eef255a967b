import os
import sys
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, time, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from app.config import settings
from app.core.redis_client import CacheManager, get_cache_manager
from app.core.security import create_access_token
from app.database import async_database_url, get_db
from app.dependencies import get_event_publisher
from app.main import app
from app.models import business_hours, businesses, customers, metadata, services, staff
from app.services.events import AppointmentEventPublisher

# Database-backed tests run only against an explicit test database
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# Safety check: prevent running tests against production database
if TEST_DATABASE_URL and settings.database_url == TEST_DATABASE_URL:
    print("\n❌ CRITICAL ERROR: Test database URL is same as production database!")
    print("This would DROP all production data during tests.")
    print("Please set TEST_DATABASE_URL to a separate test database in .env")
    sys.exit(1)

test_engine = None
TestSessionLocal = None

if TEST_DATABASE_URL:
    TEST_DATABASE_URL = async_database_url(TEST_DATABASE_URL)

    # Use NullPool to avoid event loop issues with remote databases
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,  # Set to True for SQL debugging
        poolclass=NullPool,
    )

    TestSessionLocal = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ============================================================================
# HTTP client with mocked collaborators
# ============================================================================


@pytest.fixture
def business_id():
    return uuid4()


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async session stand-in for endpoint tests whose services are patched."""
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def mock_events() -> MagicMock:
    return MagicMock(spec=AppointmentEventPublisher)


@pytest.fixture
def mock_cache() -> CacheManager:
    redis_client = MagicMock()
    redis_client.get.return_value = None
    return CacheManager(redis_client=redis_client)


@pytest_asyncio.fixture
async def client(
    mock_db: AsyncMock,
    mock_events: MagicMock,
    mock_cache: CacheManager,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client with database, events and cache overridden."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: mock_events
    app.dependency_overrides[get_cache_manager] = lambda: mock_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_token():
    """Mint access tokens with the claims issued by the auth service."""

    def _make(role: str = "staff", **claims) -> str:
        return create_access_token(
            uuid4(), role=role, expires_delta=timedelta(minutes=30), **claims
        )

    return _make


@pytest.fixture
def auth_headers(business_id, make_token) -> dict:
    """Bearer headers for a staff member of ``business_id``."""
    token = make_token(business_id=str(business_id))
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# Database fixtures
# ============================================================================


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on a freshly created schema."""
    if TestSessionLocal is None:
        pytest.skip("TEST_DATABASE_URL not set")

    async with test_engine.begin() as conn:
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    # Drop tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


@pytest.fixture
def session_factory():
    """Factory for extra sessions, used to simulate concurrent writers."""
    return TestSessionLocal


@pytest_asyncio.fixture
async def salon(db_session: AsyncSession) -> dict:
    """
    A business open 09:00-18:00 every day with one 45-minute service,
    two staff members and one customer.
    """
    result = await db_session.execute(
        insert(businesses)
        .values(
            name="Test Salon",
            slug=f"test-salon-{uuid4().hex[:8]}",
            timezone="UTC",
            slot_duration=45,
            buffer_time=15,
            advance_booking_days=30,
            min_advance_booking_hours=0,
            min_cancellation_hours=10,
            late_refund_percentage=Decimal("0"),
        )
        .returning(businesses)
    )
    business = dict(result.mappings().one())

    await db_session.execute(
        insert(business_hours),
        [
            {
                "business_id": business["id"],
                "day_of_week": day,
                "open_time": time(9, 0),
                "close_time": time(18, 0),
                "is_closed": False,
            }
            for day in range(1, 8)
        ],
    )
    result = await db_session.execute(
        insert(services)
        .values(
            business_id=business["id"],
            name="Haircut",
            duration_minutes=45,
            price=Decimal("1000.00"),
        )
        .returning(services)
    )
    service = dict(result.mappings().one())

    result = await db_session.execute(
        insert(staff)
        .values(
            [
                {"business_id": business["id"], "name": "Asha"},
                {"business_id": business["id"], "name": "Ravi"},
            ]
        )
        .returning(staff.c.id)
    )
    staff_ids = list(result.scalars().all())

    result = await db_session.execute(
        insert(customers)
        .values(business_id=business["id"], first_name="Meera", phone="+919876543210")
        .returning(customers)
    )
    customer = dict(result.mappings().one())
    await db_session.commit()

    return {
        "business": business,
        "service": service,
        "staff_ids": staff_ids,
        "customer": customer,
        "day": (datetime.now(UTC) + timedelta(days=2)).date(),
    }
