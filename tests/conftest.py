"""Test configuration and fixtures"""

import pytest
from datetime import datetime
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from callrelay.main import app, configure_services
from callrelay.config import settings
from callrelay.database import Base, get_db
from callrelay.models.call import Call
from callrelay.relay.store import CallStore


class FakeClock:
    """Monotonic clock the test advances by hand"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGenerator:
    """Suggestion generator that records its calls"""

    def __init__(self, reply: str = "Offer to look up the order status."):
        self.reply = reply
        self.error = None
        self.calls = []

    async def generate(self, call_id, customer_message):
        self.calls.append((call_id, customer_message))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh SQLite database file"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_db(session_factory):
    """Create test database session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory):
    return CallStore(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
async def test_call(test_db):
    """Create an in-progress inbound call"""
    call = Call(
        call_sid="CA123",
        customer_number="+15551234567",
        direction="inbound",
        status="in-progress",
        started_at=datetime.utcnow(),
    )
    test_db.add(call)
    await test_db.commit()

    return call


@pytest.fixture
async def client(test_db, session_factory, fake_generator):
    """Create test client with overridden database and relay services"""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    configure_services(app, settings, session_factory)
    app.state.generator = fake_generator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
