import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import models
from core.base import Base
from core.depends import get_session
from core.events import enable_sqlite_foreign_keys
from core.identity import identity

# Test database - in-memory SQLite shared by every session of a test
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(anyio_backend):
    test_engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(test_engine)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield test_engine
    finally:
        await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, autocommit=False, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    """Session for direct service tests. Every use must sit inside ``session.begin()``."""
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
async def alice(session):
    return await identity.sign_up(session, "alice@example.com", "alicepass123", {"name": "Alice"})


@pytest.fixture
async def bob(session):
    return await identity.sign_up(session, "bob@example.com", "bobpass123", {"name": "Bob"})


@pytest.fixture
async def alice_headers(session, alice):
    token = await identity.sign_in(session, "alice@example.com", "alicepass123")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def bob_headers(session, bob):
    token = await identity.sign_in(session, "bob@example.com", "bobpass123")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory):
    """HTTP client against the real app with the test database swapped in."""
    from main import app

    async def override_get_session():
        async with session_factory() as db_session:
            yield db_session

    app.dependency_overrides[get_session] = override_get_session
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
            yield http_client
    finally:
        app.dependency_overrides.clear()


async def count_rows(session, model) -> int:
    async with session.begin():
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


@pytest.fixture
def row_count(session):
    async def _count(model=models.Poll):
        return await count_rows(session, model)
    return _count
