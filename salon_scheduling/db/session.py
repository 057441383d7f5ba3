"""
Read-Only Database Sessions

The scheduling service never writes to the booking store. Sessions handed
out here are closed without a commit, which rolls back whatever
transaction the queries opened.
"""

import logging
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from salon_scheduling.config import settings

logger = logging.getLogger(__name__)


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Create the pooled asyncpg engine on first use."""
    global _engine

    if _engine is None:
        _engine = create_async_engine(
            settings.database_url_str,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=True,
        )
        logger.info(f"Booking store engine created (pool_size={settings.db_pool_size})")

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )

    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Nothing is committed: closing the session releases its connection and
    rolls back the open transaction, on success and on error alike.

    Yields:
        AsyncSession: Session backing the request's BookingRepository
    """
    session = get_session_factory()()

    try:
        yield session
    except Exception as e:
        logger.error(f"Request failed while holding a booking store session: {e}")
        raise
    finally:
        await session.close()


async def check_database_connection() -> bool:
    """
    Ping the booking store.

    Returns:
        bool: True if ``SELECT 1`` succeeds, False otherwise
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection check successful")
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


async def close_database_connection() -> None:
    """Dispose the engine on application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed successfully")
