"""Shared test fixtures."""

from collections.abc import AsyncIterator
from datetime import timedelta

import pytest
from litestar.testing import AsyncTestClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from oura_health_server.core.auth import create_access_token
from oura_health_server.core.config import Settings
from oura_health_server.core.metrics import MetricsCollector
from oura_health_server.core.password import hash_password
from oura_health_server.models.base import Base
from oura_health_server.models.user import User

TEST_JWT_SECRET = "test-jwt-secret-that-is-long-enough-0123456789"
TEST_PASSWORD = "correct-horse-battery"


@pytest.fixture
def settings() -> Settings:
    """Settings with test credentials (no .env lookup)."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret=TEST_JWT_SECRET,
        oura_client_id="test-client-id",
        oura_client_secret="test-client-secret",
        oura_redirect_uri="http://testserver/api/callback",
        processor_api_key=None,
    )


@pytest.fixture
def metrics() -> MetricsCollector:
    """Fresh Prometheus collector with its own registry."""
    return MetricsCollector("test")


@pytest.fixture
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncIterator[AsyncSession]:
    """Create async session for testing."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
async def test_user(async_session: AsyncSession) -> User:
    """Create a test user whose password is TEST_PASSWORD."""
    user = User(
        id="test-user-uuid-1",
        username="alice",
        email="alice@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        is_active=True,
    )
    async_session.add(user)
    await async_session.commit()
    await async_session.refresh(user)
    return user


@pytest.fixture
async def test_user_2(async_session: AsyncSession) -> User:
    """Create a second test user."""
    user = User(
        id="test-user-uuid-2",
        username="bob",
        email="bob@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        is_active=True,
    )
    async_session.add(user)
    await async_session.commit()
    await async_session.refresh(user)
    return user


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    """Bearer header for test_user."""
    token = create_access_token(
        user_id=test_user.id,
        username=test_user.username,
        secret=TEST_JWT_SECRET,
        expires_in=timedelta(hours=1),
    )
    return {"Authorization": f"Bearer {token}"}
