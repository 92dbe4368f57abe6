"""
Async SQLAlchemy database engine and session management.
Uses asyncpg driver for PostgreSQL async connections; a sqlite+aiosqlite URL
works for local runs of the scripts.
CRITICAL: expire_on_commit=False prevents lazy-loading issues in async contexts.

Two session paths:
- API requests get one session per request via get_db (commit on success).
- Workers and the lawyer notice open their own via async_session_factory.
"""
import logging
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

_engine = None
_async_session_factory = None


class Base(DeclarativeBase):
    pass


def engine_options(settings) -> dict:
    """Keyword arguments for create_async_engine for the configured database."""
    options = {"echo": settings.app_env == "development"}
    if settings.database_url.startswith("sqlite"):
        # SQLite pools reject sizing arguments
        return options
    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,  # Workers hold the engine across long idle polls
    )
    return options


def _get_engine():
    global _engine
    if _engine is None:
        from lawdesk.config import get_settings
        settings = get_settings()
        _engine = create_async_engine(settings.database_url, **engine_options(settings))
    return _engine


def _get_session_factory():
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            _get_engine(), class_=AsyncSession, expire_on_commit=False
        )
    return _async_session_factory


def async_session_factory() -> AsyncSession:
    """Session for background workers and out-of-request writes (non-FastAPI context)."""
    return _get_session_factory()()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session."""
    session_factory = _get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            # Services may already have committed (booking does); this flushes the rest
            await session.commit()
        except Exception as e:
            logger.debug("Database session error, rolling back: %s", str(e))
            await session.rollback()
            raise
        finally:
            await session.close()
