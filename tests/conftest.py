"""Shared pytest fixtures for API, database, and service tests."""

import os
import tempfile
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from unittest.mock import AsyncMock

_TEST_DB_DIR = tempfile.mkdtemp(prefix="biolink-tests-")
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db"
)
os.environ["APP_ENV"] = "test"
os.environ["STATS_TIMEZONE"] = "UTC"

import pytest
import pytest_asyncio
import redis.asyncio as redis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from biolink.config import get_settings
from biolink.database import Base, get_db, get_session_factory
from biolink.dependencies import ServiceManager
from biolink.main import app
from biolink.redis import get_redis

settings = get_settings()

test_engine = create_async_engine(settings.DATABASE_URL, echo=False, poolclass=NullPool)

test_session = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with test_session() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def mock_redis() -> AsyncMock:
    client = AsyncMock(spec=redis.Redis)
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.ping = AsyncMock(return_value=True)
    return client


@pytest.fixture
def ctx(db_session: AsyncSession, mock_redis: AsyncMock) -> SimpleNamespace:
    """A RequestContext stand-in for calling services directly."""
    manager = ServiceManager()
    manager.initialize()
    return SimpleNamespace(
        database=db_session,
        cache=mock_redis,
        settings=settings,
        logger=manager.logger,
    )


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, mock_redis: AsyncMock) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with test_session() as session:
            yield session

    async def override_get_redis() -> redis.Redis:
        return mock_redis

    def override_get_session_factory() -> async_sessionmaker[AsyncSession]:
        return test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_session_factory] = override_get_session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(client: AsyncClient, username: str = "alice") -> dict:
    response = await client.post("/api/users", json={"username": username})
    assert response.status_code == 201, response.text
    return response.json()


async def create_link(client: AsyncClient, user_id: int, url: str = "https://example.com/blog", **extra) -> dict:
    body = {"title": "Blog", "originalUrl": url, "userId": user_id, **extra}
    response = await client.post("/api/links", json=body)
    assert response.status_code == 201, response.text
    return response.json()
