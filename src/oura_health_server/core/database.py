"""Database engine creation and migration checks."""

import logging

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from oura_health_server.core.config import Settings

logger = logging.getLogger(__name__)


def create_engine(settings: Settings) -> AsyncEngine:
    """Create PostgreSQL database engine.

    Args:
        settings: Application settings

    Returns:
        Async SQLAlchemy engine configured for PostgreSQL
    """
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_size,
        pool_pre_ping=True,
        pool_recycle=300,  # Recycle connections every 5 minutes
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def check_migrations(engine: AsyncEngine) -> str | None:
    """Verify the database is reachable and migrations have been applied.

    Does NOT create tables - use ``oura-health-server migrate``.

    Returns:
        Current migration revision, or None if migrations have not been run
    """
    async with engine.connect() as conn:
        has_migrations = await conn.run_sync(
            lambda sync_conn: inspect(sync_conn).has_table("alembic_version")
        )

        if not has_migrations:
            logger.warning(
                "Database migrations have not been applied. "
                "Run 'oura-health-server migrate' to initialize the database schema."
            )
            return None

        result = await conn.execute(text("SELECT version_num FROM alembic_version"))
        version = result.scalar()
        logger.info(f"Database initialized with migration version: {version}")
        return version
