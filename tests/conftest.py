"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks Redis and all provider calls.
"""
import os

os.environ.setdefault("APP_SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import uuid
from datetime import date, time
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB, UUID

from lawdesk.database import Base
import lawdesk.models  # noqa: F401  (registers every table on Base.metadata)
from lawdesk.models.team_member import TeamMember
from lawdesk.models.availability import AvailabilityRule


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


# Store UUIDs as text in SQLite (a bare "UUID" column gets NUMERIC affinity)
@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(type_, compiler, **kw):
    return "CHAR(32)"


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    with patch("lawdesk.utils.redis_client.get_redis") as mock:
        redis_mock = AsyncMock()
        redis_mock.set = AsyncMock(return_value=True)
        redis_mock.get = AsyncMock(return_value=None)
        redis_mock.eval = AsyncMock(return_value=1)
        redis_mock.ping = AsyncMock(return_value=True)
        mock.return_value = redis_mock
        yield redis_mock


@pytest.fixture
def firm_id():
    return uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture
def lawyer_id():
    return uuid.UUID("22222222-2222-2222-2222-222222222222")


@pytest.fixture
async def lawyer(db, firm_id, lawyer_id):
    """A lawyer on the firm's team."""
    member = TeamMember(firm_id=firm_id, user_id=lawyer_id, full_name="Asha Rao", role="lawyer")
    db.add(member)
    await db.flush()
    return member


@pytest.fixture
async def monday_rule(db, lawyer):
    """Monday 09:00-12:00, 30-minute slots, no buffer, no cap."""
    rule = AvailabilityRule(
        owner_id=lawyer.user_id,
        day_of_week=1,
        start_time=time(9, 0),
        end_time=time(12, 0),
        slot_duration_minutes=30,
        buffer_minutes=0,
        max_per_day=None,
        active=True,
    )
    db.add(rule)
    await db.flush()
    return rule


@pytest.fixture
def monday():
    # 2026-03-02 is a Monday
    return date(2026, 3, 2)
