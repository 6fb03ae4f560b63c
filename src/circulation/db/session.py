# src/circulation/db/session.py
from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from circulation.app_logger import get_logger
from circulation.core.config import settings

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Engine configuration
# ---------------------------------------------------------------------------

# Use NullPool in tests (or when explicitly requested) to avoid sharing the same
# connection across tasks.
USE_NULLPOOL = (
    os.getenv("SQLALCHEMY_NULLPOOL", "0") == "1"
    or bool(getattr(settings, "TESTING", False))
)

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Build the app-wide async engine on first use."""
    global _engine
    if _engine is None:
        kwargs: dict = {
            "echo": bool(settings.DB_ECHO),
            "pool_pre_ping": True,  # protects against stale connections
        }
        if USE_NULLPOOL:
            kwargs["poolclass"] = NullPool
        _engine = create_async_engine(settings.DATABASE_URL, **kwargs)
        log.info("database engine created for %s", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the app-wide async sessionmaker."""
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(
            bind=get_engine(),
            expire_on_commit=False,
            class_=AsyncSession,
        )
    return _sessionmaker


# ---------------------------------------------------------------------------
# Unit of work
#   Every mutating circulation operation runs inside exactly one of these:
#   commit on success, rollback on any exception, nothing partially applied.
# ---------------------------------------------------------------------------

@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise


# ---------------------------------------------------------------------------
# FastAPI dependencies
#   - get_session: async context manager (use with `async with`)
#   - get_db: async generator (use with `Depends(get_db)`)
# ---------------------------------------------------------------------------

@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with get_sessionmaker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_sessionmaker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
