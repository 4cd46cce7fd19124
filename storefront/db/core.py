"""
Single database core module for the storefront identity service.

All database access goes through this module:
- get_engine(): lazily built async SQLAlchemy engine
- get_async_session(): session context manager with rollback on error
- init_models(): create tables when AUTO_CREATE_SCHEMA is enabled
- configure_engine()/dispose_engine(): used by startup and tests
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from storefront.settings import get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _normalize_url(url: str) -> str:
    # Plain postgres URLs get the async driver
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and not url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def _build_engine(url: str) -> AsyncEngine:
    url = _normalize_url(url)
    if url.startswith("sqlite"):
        # One connection per checkout so concurrent writers serialize on the file lock
        engine = create_async_engine(url, poolclass=NullPool, future=True, echo=False)
    else:
        engine = create_async_engine(
            url,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=1800,
            pool_timeout=30,
            future=True,
            echo=False,
        )
    logger.info(
        "db.engine_init",
        extra={"meta": {"dialect": engine.dialect.name, "pooled": not url.startswith("sqlite")}},
    )
    return engine


def configure_engine(url: str | None = None) -> AsyncEngine:
    """(Re)build the engine and session factory, defaulting to DATABASE_URL."""
    global _engine, _session_factory
    _engine = _build_engine(url or get_settings().DATABASE_URL)
    _session_factory = async_sessionmaker(bind=_engine, expire_on_commit=False)
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        configure_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        configure_engine()
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncIterator[AsyncSession]:
    """Yield an async SQLAlchemy session that always closes cleanly."""
    session = get_session_factory()()
    start_time = time.monotonic()
    try:
        yield session
    except Exception as e:
        await session.rollback()
        logger.warning(
            "db.session_rollback",
            extra={
                "meta": {
                    "error_type": type(e).__name__,
                    "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
                }
            },
        )
        raise
    finally:
        await session.close()


async def init_models() -> None:
    """Create all tables that do not exist yet."""
    from storefront.db.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db.schema_ready")


async def health_check() -> bool:
    """Database connectivity check."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return False


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
