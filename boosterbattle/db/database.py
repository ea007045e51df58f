"""
Card store engine and session management.

Production runs on Postgres via asyncpg, where battle rows are locked with
SELECT ... FOR UPDATE. SQLite (aiosqlite) is accepted for local play and
tests; it ignores FOR UPDATE and serializes writers on the database file.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from boosterbattle.config import settings
from boosterbattle.models.db import Base


def _engine_options(database_url: str) -> dict[str, Any]:
    if make_url(database_url).get_backend_name() == "sqlite":
        # Wait for the file lock instead of failing a concurrent claim
        return {"connect_args": {"timeout": 30}}
    return {"pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a card store session.

    Pack and battle operations commit their own transactions; anything left
    pending when the request finishes is committed here, and rolled back if
    the request raised.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the card, timer and battle tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Release pooled connections on shutdown."""
    await engine.dispose()
