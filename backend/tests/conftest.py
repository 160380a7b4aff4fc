"""
Pytest fixtures for test database, lock store, client, and authentication.

Runs against a throwaway SQLite file by default; point TEST_DATABASE_URL at
a Postgres database to exercise real row locks. Redis is replaced by an
in-memory fakeredis server per test, with Lua scripting enabled.
"""

import os
import tempfile
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator

TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), f"seatkeeper_test_{os.getpid()}.db"),
)

# Settings are read once at import, so these must be in place first
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["BACKGROUND_WORKERS_ENABLED"] = "false"
os.environ["PAYMENT_DELAY_SECONDS"] = "0"
os.environ["ADMISSION_PROCESSING_MIN_SECONDS"] = "0"
os.environ["ADMISSION_PROCESSING_MAX_SECONDS"] = "0"

import fakeredis  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker  # noqa: E402

from seatkeeper.main import app  # noqa: E402
from seatkeeper.db.base import Base  # noqa: E402
from seatkeeper.db.session import get_db  # noqa: E402
from seatkeeper.core.security import create_access_token  # noqa: E402
from seatkeeper.infrastructure.redis_client import RedisClient, get_redis  # noqa: E402
from seatkeeper.models import Event, Seat, Show, User, Venue  # noqa: E402
from seatkeeper.services.catalog_service import create_show  # noqa: E402
from seatkeeper.services.interfaces.open_admission import OpenAdmission  # noqa: E402
from seatkeeper.services.strategy_factory import get_admission, reset_admission  # noqa: E402

_connect_args = {"timeout": 30} if TEST_DATABASE_URL.startswith("sqlite") else {}
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, connect_args=_connect_args)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


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
async def session_factory(db_session: AsyncSession) -> async_sessionmaker:
    """Factory for extra sessions, e.g. one per concurrent caller."""
    return TestSessionLocal


@pytest_asyncio.fixture(scope="function")
async def lock_store():
    """A fresh in-memory Redis, installed as the process-wide client."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    RedisClient.use(client)
    reset_admission()
    yield client
    RedisClient.use(None)
    reset_admission()
    await client.aclose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, lock_store) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client wired to the test database and fake lock store.
    Each request gets its own session, as in production. Admission is open
    unless a test installs another strategy.
    """

    async def override_get_db():
        async with TestSessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_redis():
        return lock_store

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_admission] = OpenAdmission

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _add_user(db: AsyncSession, email: str, username: str) -> User:
    user = User(email=email, username=username)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user in the database."""
    return await _add_user(db_session, "test@example.com", "testuser")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "other@example.com", "otheruser")


def _bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    """Authorization headers with Bearer token."""
    return _bearer(test_user)


@pytest_asyncio.fixture
async def other_auth_headers(other_user: User) -> dict:
    return _bearer(other_user)


@pytest_asyncio.fixture
async def venue(db_session: AsyncSession) -> Venue:
    """A venue with three rows of five seats, A1..A5, B1..B5 and C1..C5."""
    venue = Venue(name="Test Hall", address="1 Test Street")
    db_session.add(venue)
    await db_session.flush()
    db_session.add_all(
        Seat(venue_id=venue.id, seat_row=row, seat_number=number)
        for row in ("A", "B", "C")
        for number in range(1, 6)
    )
    await db_session.commit()
    await db_session.refresh(venue)
    return venue


@pytest_asyncio.fixture
async def seats(db_session: AsyncSession, venue: Venue) -> list[Seat]:
    """The venue's seats in id order."""
    result = await db_session.execute(select(Seat).where(Seat.venue_id == venue.id).order_by(Seat.id))
    return list(result.scalars().all())


@pytest_asyncio.fixture
async def test_show(db_session: AsyncSession, venue: Venue, seats: list[Seat]) -> Show:
    """A show of a test event with every venue seat AVAILABLE."""
    event = Event(title="Test Concert", description="A test event")
    db_session.add(event)
    await db_session.flush()

    start = datetime.now(timezone.utc) + timedelta(days=30)
    show = await create_show(
        db_session,
        event_id=event.id,
        venue_id=venue.id,
        start_time=start,
        end_time=start + timedelta(hours=2),
        price=Decimal("49.50"),
    )
    await db_session.commit()
    return show


@pytest.fixture
def seat_ids(seats: list[Seat]) -> list[int]:
    return [seat.id for seat in seats]
