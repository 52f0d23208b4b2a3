"""
Shared pytest configuration for LocalDink tests.

Service tests run against a throwaway database: TEST_DATABASE_URL when set,
otherwise a SQLite file (aiosqlite) in the test's temporary directory.

SAFETY: This module REFUSES to run against any database whose name does not
contain the substring "test". This prevents accidental drops of a development
or production database when environment variables are misconfigured.
"""

import os

# Must be set before localdink.api.routes is imported (rate limiter is a no-op in tests)
os.environ.setdefault("ENV", "test")

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
import pytz
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from localdink.database import db
from localdink.database.db import Base
from localdink.services import court_service, player_service, settings_service
from localdink.services.notification_router import NotificationRouter
from localdink.tests.fakes import FakeSmsClient


def _check_test_database(url: str) -> str:
    """Raise RuntimeError unless the database name contains "test"."""
    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Resolved URL: {url}\n\n"
            f"  Fix: set TEST_DATABASE_URL to a test database, e.g.:\n"
            f"    export TEST_DATABASE_URL=postgresql+asyncpg://.../localdink_test\n"
            f"{'=' * 70}"
        )
    return url


# Validated at import time so pytest fails immediately on a bad URL
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")
if TEST_DATABASE_URL:
    _check_test_database(TEST_DATABASE_URL)

NOW = datetime(2026, 6, 1, 17, 0, tzinfo=pytz.UTC)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a fresh test database and point db.AsyncSessionLocal at it."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'localdink_test.db'}"
    _check_test_database(url)

    # NullPool avoids reusing connections across event loops
    engine = create_async_engine(url, echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    test_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = test_session_maker

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """A session on the test database; uncommitted work is rolled back afterwards."""
    async_session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Settings lookups skip the Redis layer in tests."""
    async def fake_get_redis_client():
        return None

    monkeypatch.setattr(settings_service, "get_redis_client", fake_get_redis_client)


@pytest.fixture
def sms_client():
    return FakeSmsClient()


@pytest.fixture
def notifier(sms_client):
    return NotificationRouter(sms_client=sms_client, clock=lambda: NOW)


@pytest.fixture
def now():
    return NOW


@pytest_asyncio.fixture
async def organizer(db_session):
    return await player_service.create_player(
        db_session, player_id="p1", first_name="Robert", last_name="Smith", phone="555-010-1001"
    )


@pytest_asyncio.fixture
async def invitees(db_session):
    """Three players with textable phone numbers."""
    return [
        await player_service.create_player(
            db_session, player_id="p2", first_name="Alex", last_name="Johnson", phone="4045389332"
        ),
        await player_service.create_player(
            db_session, player_id="p3", first_name="Maria", last_name="Garcia", phone="+14155550103"
        ),
        await player_service.create_player(
            db_session, player_id="p4", first_name="Chen", last_name="Wei", phone="(415) 555-0104"
        ),
    ]


@pytest_asyncio.fixture
async def court(db_session):
    return await court_service.create_court(
        db_session, court_id="c1", name="Sunnyvale Park", location="Sunnyvale, CA", is_home=True
    )


@pytest.fixture
def start_time():
    """A game three days after NOW."""
    return NOW + timedelta(days=3)
