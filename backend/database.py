# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
SQLAlchemy declarative base plus the async engine / session-factory helpers
used by the client-side LocalStore.

Nothing here is a module-level engine: every VaultSession builds its own, so
two sessions (or two tests) never share a database by accident.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def make_engine(url: str) -> AsyncEngine:
    """
    Create an async engine for *url* (``sqlite+aiosqlite:///...``).

    In-memory SQLite needs a single shared connection, otherwise every
    checkout would see an empty database.
    """
    if url.startswith("sqlite") and ":memory:" in url:
        return create_async_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(url)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows are converted to plain objects after the
    # commit, outside any lazy-load context.
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create the local tables if they do not exist yet."""
    # Import ORM models so that Base.metadata knows about every table.
    import models.vault_item       # noqa: F401
    import models.file_attachment  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
