"""
Engine and session factory for message and profile storage.

``PERSONA_DATABASE_URL`` selects the backend (asyncpg or aiosqlite); a local
SQLite file is used when it is unset.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from personality_engine.config import settings

logger = logging.getLogger(__name__)

FALLBACK_DATABASE_URL = "sqlite+aiosqlite:///./persona.db"


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    if settings.database_url:
        return settings.database_url
    logger.warning(f"PERSONA_DATABASE_URL unset, falling back to {FALLBACK_DATABASE_URL}")
    return FALLBACK_DATABASE_URL


def _redacted(url: str) -> str:
    return url.rsplit("@", 1)[-1]


async def init_db() -> None:
    """Open the engine and create any missing tables."""
    global _engine, _session_factory

    url = get_database_url()
    logger.info(f"Opening database {_redacted(url)}")

    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    _engine = create_async_engine(url, echo=settings.debug, connect_args=connect_args)
    _session_factory = async_sessionmaker(bind=_engine, class_=AsyncSession, expire_on_commit=False)

    from personality_engine.db import models  # noqa: F401  registers tables on Base

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready")


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database closed")


def _factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session: commits on success, rolls back on error."""
    async with _factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def AsyncSessionLocal() -> AsyncSession:
    """Standalone session for work that outlives a request, like error replies."""
    return _factory()()
