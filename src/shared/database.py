"""Database connection and session management for PostgreSQL/SQLite + Redis."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.shared.config import get_settings
from src.shared.constants import (
    DB_HEALTH_CHECK_MAX_RETRIES,
    DB_HEALTH_CHECK_RETRY_DELAY_SECONDS,
)

logger = logging.getLogger(__name__)


# ===================
# SQLAlchemy Base
# ===================


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


# ===================
# Engine / Sessions
# ===================

# Store engine per event loop ID to avoid cross-loop connection issues
_engines: dict[int, AsyncEngine] = {}
_session_factories: dict[int, async_sessionmaker[AsyncSession]] = {}


def _get_loop_id() -> int:
    """Get current event loop ID for tracking connections."""
    try:
        loop = asyncio.get_running_loop()
        return id(loop)
    except RuntimeError:
        # No running loop - use 0 as fallback
        return 0


def get_engine() -> AsyncEngine:
    """Get SQLAlchemy async engine for current event loop."""
    settings = get_settings()
    loop_id = _get_loop_id()

    if _engines.get(loop_id) is None:
        if settings.is_sqlite:
            # SQLite uses a static pool; sizing options do not apply
            _engines[loop_id] = create_async_engine(settings.database_url, echo=False)
        else:
            _engines[loop_id] = create_async_engine(
                settings.database_url,
                echo=False,
                pool_pre_ping=True,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_timeout=settings.db_pool_timeout,
                pool_recycle=settings.db_pool_recycle,
            )
    return _engines[loop_id]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get SQLAlchemy session factory for current event loop."""
    loop_id = _get_loop_id()

    if _session_factories.get(loop_id) is None:
        _session_factories[loop_id] = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factories[loop_id]


@asynccontextmanager
async def get_db_session(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session context manager.

    Commits on clean exit, rolls back on any exception.

    Args:
        session_factory: Overrides the per-loop factory built from settings

    Usage:
        async with get_db_session() as session:
            result = await session.execute(query)
    """
    factory = session_factory or get_session_factory()
    async with factory() as session:
        try:
            yield session
            try:
                await session.commit()
            except Exception:
                # Rollback if commit itself fails to prevent connection leak
                await session.rollback()
                raise
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Create all tables.

    Importing the store models registers them on Base.metadata.
    """
    import src.modules.store.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


async def close_db() -> None:
    """Dispose every engine created by this process."""
    for engine in list(_engines.values()):
        try:
            await engine.dispose()
        except Exception as e:
            logger.warning(f"Error disposing engine: {e}")
    _engines.clear()
    _session_factories.clear()


# ===================
# Redis
# ===================

_redis_pool: redis.ConnectionPool | None = None


async def get_redis() -> redis.Redis:
    """Get Redis connection from pool.

    Usage:
        redis_client = await get_redis()
        await redis_client.set("key", "value")
    """
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.ConnectionPool.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return redis.Redis(connection_pool=_redis_pool)


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_pool
    if _redis_pool is not None:
        try:
            await _redis_pool.aclose()
        except Exception as e:
            logger.warning(f"Error closing Redis pool: {e}")
        finally:
            _redis_pool = None


# ===================
# Lifecycle Helpers
# ===================


async def check_db_health(
    max_retries: int = DB_HEALTH_CHECK_MAX_RETRIES,
    retry_delay: float = DB_HEALTH_CHECK_RETRY_DELAY_SECONDS,
) -> bool:
    """Check database health with retries.

    Args:
        max_retries: Maximum number of retry attempts
        retry_delay: Delay between retries in seconds

    Returns:
        True if database is healthy, False otherwise
    """
    for attempt in range(max_retries):
        try:
            engine = get_engine()
            async with engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            logger.debug("Database health check passed")
            return True
        except Exception as e:
            logger.warning(f"Database health check failed (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay)
    return False


async def shutdown() -> None:
    """Close all connections on application shutdown."""
    await close_db()
    await close_redis()
    logger.info("All database connections closed")
