"""
Database configuration and session management.
Uses SQLAlchemy async engine for PostgreSQL.

The database is optional: without DATABASE_URL uploads still work and
points are still awarded, but nothing is recorded durably.
"""
import logging
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

from labsmarket.config import settings
from labsmarket.models.base import Base

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to Postgres."""
    kwargs = {
        "echo": False,  # Disable SQLAlchemy query logging
        "future": True,
        "pool_pre_ping": True,
    }
    if database_url.startswith("postgresql"):
        kwargs["pool_size"] = 10
        kwargs["max_overflow"] = 20
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


def is_configured() -> bool:
    return bool(settings.database_url)


def get_engine() -> Optional[AsyncEngine]:
    """Engine for DATABASE_URL, created on first use. None when unset."""
    global _engine
    if _engine is None and is_configured():
        _engine = create_engine(settings.database_url)
    return _engine


def get_session_factory() -> Optional[async_sessionmaker]:
    """Session factory for DATABASE_URL, or None when the database is not configured."""
    global _session_factory
    if _session_factory is None:
        engine = get_engine()
        if engine is not None:
            _session_factory = create_session_factory(engine)
    return _session_factory


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency for FastAPI routes to get database session.
    Usage: db: AsyncSession = Depends(get_db)
    """
    factory = get_session_factory()
    if factory is None:
        raise RuntimeError("Database not configured. Set DATABASE_URL.")
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(engine: Optional[AsyncEngine] = None) -> bool:
    """
    Create tables. Called on application startup.

    Returns:
        False when no database is configured
    """
    engine = engine or get_engine()
    if engine is None:
        logger.warning("DATABASE_URL not set; uploads will not be recorded durably")
        return False

    from labsmarket.models.upload import Upload  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")
    return True


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
