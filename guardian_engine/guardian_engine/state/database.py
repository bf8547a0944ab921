"""Engine construction, schema creation and transactional sessions for guardian state.

Snapshots and the activity log live in one database.  A ``sqlite`` URL
(``sqlite+aiosqlite:///path`` or ``sqlite+aiosqlite://`` for memory) goes
through :mod:`guardian_engine.state.sqlite_adapter`; anything else gets a
pooled engine sized from settings.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from guardian_engine.state.sqlite_adapter import MEMORY, get_local_engine
from guardian_engine.state.tables import Base

if TYPE_CHECKING:
    from guardian_engine.config import Settings

logger = logging.getLogger(__name__)

_session_factories: dict[int, async_sessionmaker[AsyncSession]] = {}


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create the async engine holding snapshot and activity tables.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL.  SQLite URLs without a database path open an
        in-memory database shared by every session.
    pool_size, max_overflow:
        Pool sizing for server databases; SQLite ignores both.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return get_local_engine(url.database or MEMORY)

    engine = create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=10,
        echo=False,
    )
    logger.info(
        "Created %s engine pool_size=%d max_overflow=%d",
        url.get_backend_name(),
        pool_size,
        max_overflow,
    )
    return engine


def engine_from_settings(settings: Settings) -> AsyncEngine:
    return get_engine(settings.database_url, settings.database_pool_size, settings.database_max_overflow)


async def create_tables(engine: AsyncEngine) -> None:
    """Create ``config_snapshots`` and ``activity_log`` when missing."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Guardian tables ready on %s", engine.url.render_as_string(hide_password=True))


def _factory_for(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Engines are short-lived in the CLI, so an id can be reused by a new engine.
    factory = _session_factories.get(id(engine))
    if factory is None or factory.kw.get("bind") is not engine:
        factory = async_sessionmaker(engine, expire_on_commit=False)
        _session_factories[id(engine)] = factory
    return factory


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits on clean exit and rolls back on error.

    Each call is its own transaction: repositories flush, this commits.
    """
    session = _factory_for(engine)()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
