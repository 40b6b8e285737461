"""
Shared pytest fixtures.

Every test gets its own SQLite file under ``tmp_path`` so concurrent sessions
contend on a real database lock, the same way they would on PostgreSQL.
"""

import os
from typing import AsyncGenerator

# Ensure test environment before the app reads its settings
os.environ["ENV"] = "test"
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite:///./emr_scheduling_unused.db"
os.environ["DB_MANAGE"] = "create_all"
os.environ["EVENT_BUS_PROVIDER"] = "noop"
os.environ["OUTBOX_RELAY_ENABLED"] = "false"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, async_sessionmaker

from emr_scheduling.core.db import make_engine, init_models, get_session
from emr_scheduling.main import app
from emr_scheduling.modules.availability.repository import AvailabilityRepository
from emr_scheduling.modules.directory.repository import DirectoryRepository

from scheduling_fixtures import ORG_ID


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    eng = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'emr.db'}")
    await init_models(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def _test_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _test_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ============================================================================
# DIRECTORY DATA
# ============================================================================


@pytest_asyncio.fixture
async def doctor(session_factory):
    async with session_factory() as s:
        obj = await DirectoryRepository(s).create_doctor(ORG_ID, name="Dr. Amara Okafor", department="Cardiology", active=True)
        await s.commit()
        return obj


@pytest_asyncio.fixture
async def other_doctor(session_factory):
    async with session_factory() as s:
        obj = await DirectoryRepository(s).create_doctor(ORG_ID, name="Dr. Lin Chen", department="Dermatology", active=True)
        await s.commit()
        return obj


@pytest_asyncio.fixture
async def patient(session_factory):
    async with session_factory() as s:
        obj = await DirectoryRepository(s).create_patient(ORG_ID, legal_name="Jordan Reyes", primary_phone="+15550100")
        await s.commit()
        return obj


@pytest_asyncio.fixture
async def monday_morning(session_factory, doctor):
    """09:00-12:00 on Mondays for ``doctor``."""
    async with session_factory() as s:
        obj = await AvailabilityRepository(s).create_window(ORG_ID, doctor_id=doctor.id, day_of_week=1, start_min=540, end_min=720)
        await s.commit()
        return obj
