"""Async database engine and session management."""

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from linkzy.config import get_settings

import structlog

logger = structlog.get_logger()

# Engine is created on first use so alembic and the test suite can import
# the models without a live database.
_engine = None
_session_maker = None


def _get_engine():
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            pool_size=10,
            max_overflow=10,
            pool_pre_ping=True,
            echo=settings.debug,
        )
    return _engine


def _get_session_maker():
    global _session_maker
    if _session_maker is None:
        # expire_on_commit=False: routes read link/ad attributes after the
        # counter commits without a second round trip.
        _session_maker = async_sessionmaker(_get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_maker


async def get_db() -> AsyncSession:
    """FastAPI dependency — one session per request."""
    async with _get_session_maker()() as session:
        yield session


async def ping_database() -> bool:
    try:
        async with _get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("database_ping_failed", error=str(exc))
        return False


async def dispose_engine():
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
