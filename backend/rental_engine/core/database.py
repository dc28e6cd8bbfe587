"""
Database engine and sessions
Project: Rental Order Engine

One async engine per process. Request sessions come from get_db(); the
services commit or roll back themselves, and get_db() ends any transaction
a request left open so row locks taken with FOR UPDATE are released.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rental_engine.core.config import Settings, settings

logger = logging.getLogger(__name__)


def build_engine(config: Settings) -> AsyncEngine:
    """Async engine for the configured PostgreSQL database."""
    return create_async_engine(
        config.database_url,
        echo=config.debug,
        pool_pre_ping=True,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Loaded orders keep their attribute values after commit
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine: AsyncEngine = build_engine(settings)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request-scoped session.

    Read-only requests (quotes, availability, snapshots) never commit;
    whatever transaction is still open when the request ends is rolled back.

    Yields:
        AsyncSession: Async database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


async def init_db() -> None:
    """
    Run a trivial query so a wrong database_url fails at startup.

    Raises:
        Exception: Whatever the driver raised, after logging it
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database unreachable at startup: %s", e)
        raise
    logger.info("Database reachable")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database pool disposed")
