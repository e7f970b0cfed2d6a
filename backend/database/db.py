"""
Async database access.

The engine is created lazily so that importing the billing package (for
example in unit tests with in-memory stores) does not require a database
driver or a reachable server.
"""

import uuid
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from backend.core.conf import settings


@lru_cache
def get_async_engine() -> AsyncEngine:
    """Create (once) the async engine for the configured database."""
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        echo_pool=settings.DATABASE_POOL_ECHO,
        future=True,
        pool_pre_ping=True,
    )


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=get_async_engine(), autoflush=False, expire_on_commit=False)


@asynccontextmanager
async def async_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Open a session; callers commit explicitly, rollback happens on error."""
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_tables() -> None:
    """Create the billing tables if they do not exist."""
    from backend.src.billing.stores.tables import metadata

    async with get_async_engine().begin() as conn:
        await conn.run_sync(metadata.create_all)


def uuid4_str() -> str:
    """Random UUID4 as string."""
    return str(uuid.uuid4())
