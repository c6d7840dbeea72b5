"""
Pytest fixtures for test database, client, and principals.

Tables are created and dropped around each test. The default database is a
throwaway SQLite file (aiosqlite); point TEST_DATABASE_URL at a Postgres
database to exercise real row locks. Redis and the background sweeper are
disabled so entity locks run in-process and time only moves when a test
says so.
"""

import os
import tempfile
from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'gigflow_test.db')}",
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REDIS_ENABLED"] = "false"
os.environ["DEADLINE_SWEEP_ENABLED"] = "false"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker  # noqa: E402

from gigflow.main import app  # noqa: E402
from gigflow.db.base import Base  # noqa: E402
from gigflow.db.session import get_db  # noqa: E402
from gigflow.core.security import Principal, create_access_token  # noqa: E402
from gigflow.models.booking import Booking  # noqa: E402

ARTIST_USER_ID = 101
PROMOTER_USER_ID = 202
ADMIN_USER_ID = 900
OUTSIDER_USER_ID = 555

ARTIST = Principal(user_id=ARTIST_USER_ID, role="artist")
PROMOTER = Principal(user_id=PROMOTER_USER_ID, role="promoter")
ADMIN = Principal(user_id=ADMIN_USER_ID, role="admin")

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


def bearer(user_id: int, role: str) -> dict:
    token = create_access_token(data={"sub": str(user_id), "role": role})
    return {"Authorization": f"Bearer {token}"}


async def fetch(session: AsyncSession, model, **filters):
    """Re-read a row as committed, bypassing the session's identity map."""
    stmt = select(model).filter_by(**filters).execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalars().first()


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_session: AsyncSession):
    """Independent sessions, one per concurrent actor."""
    return TestSessionLocal


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session, as in production."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def artist_headers() -> dict:
    return bearer(ARTIST_USER_ID, "artist")


@pytest_asyncio.fixture
async def promoter_headers() -> dict:
    return bearer(PROMOTER_USER_ID, "organizer")


@pytest_asyncio.fixture
async def admin_headers() -> dict:
    return bearer(ADMIN_USER_ID, "admin")


@pytest_asyncio.fixture
async def outsider_headers() -> dict:
    return bearer(OUTSIDER_USER_ID, "artist")


def make_booking(**overrides) -> Booking:
    fields = dict(
        artist_id=11,
        artist_user_id=ARTIST_USER_ID,
        organizer_id=22,
        organizer_user_id=PROMOTER_USER_ID,
        event_title="Monsoon Nights",
        event_date=datetime(2026, 12, 19, 20, 0, tzinfo=timezone.utc),
        slot_time="20:00-21:30",
        artist_name="The Ragas",
        organizer_name="Skyline Events",
        venue_name="Blue Frog",
        venue_address="Mathuradas Mills, Lower Parel, Mumbai",
        offer_amount=50000,
        offer_currency="INR",
        deposit_percent=30,
        status="offered",
        offered_by="promoter",
        meta={"travelProvided": True, "soundCheckDuration": 45},
    )
    fields.update(overrides)
    return Booking(**fields)


@pytest_asyncio.fixture
async def booking(db_session: AsyncSession) -> Booking:
    """A booking with the promoter's opening offer on the table."""
    row = make_booking()
    db_session.add(row)
    await db_session.commit()
    await db_session.refresh(row)
    return row


@pytest_asyncio.fixture
async def contracting_booking(db_session: AsyncSession) -> Booking:
    """A booking whose negotiation has been accepted."""
    row = make_booking(status="contracting", offer_amount=65000, final_amount=65000)
    db_session.add(row)
    await db_session.commit()
    await db_session.refresh(row)
    return row


@pytest.fixture
def frozen_now() -> datetime:
    return datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def hours(n: float) -> timedelta:
    return timedelta(hours=n)
