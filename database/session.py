"""
Async database session management for the Yuvna lead intelligence service.

Provides the async engine and session factory.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine,
)
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def normalize_database_url(database_url: str) -> str:
    """Force the async driver for PostgreSQL and SQLite URLs."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


async def init_db(
    database_url: str, pool_size: int = 5, max_overflow: int = 10
) -> async_sessionmaker[AsyncSession]:
    """
    Initialize the async database engine and create tables.

    Args:
        database_url: PostgreSQL (asyncpg) or SQLite (aiosqlite) connection string
        pool_size: Connection pool size (ignored for SQLite)
        max_overflow: Max overflow connections (ignored for SQLite)

    Returns:
        The session factory
    """
    global _engine, _session_factory

    database_url = normalize_database_url(database_url)

    if database_url.startswith("sqlite"):
        engine_kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url:
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs = {"pool_size": pool_size, "max_overflow": max_overflow}

    _engine = create_async_engine(database_url, echo=False, **engine_kwargs)

    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Create tables (use Alembic in production)
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized")
    return _session_factory


async def close_db():
    """Close the database engine."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connection closed")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if not _session_factory:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


