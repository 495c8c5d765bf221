"""Engine and session factory for the SQL document store.

PostgreSQL (asyncpg) is the production target; SQLite (aiosqlite) URLs are
accepted for local runs and tests and skip the pool settings.
"""

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from mockquiz.app.core.config import settings
from mockquiz.app.core.logging import get_logger

logger = get_logger(__name__)

_session_maker: async_sessionmaker[AsyncSession] | None = None


@lru_cache(maxsize=1)
def get_async_engine(database_url: str | None = None) -> AsyncEngine:
    """Return the process-wide engine, creating it on first use.

    Args:
        database_url: Overrides ``settings.database_url``.
    """
    url = database_url or settings.database_url

    if url.lower().startswith("sqlite"):
        logger.info("Using SQLite document database")
        return create_async_engine(url, future=True)

    logger.info(
        f"Using PostgreSQL document database (pool_size={settings.db_pool_size}, "
        f"max_overflow={settings.db_max_overflow})"
    )
    return create_async_engine(
        url,
        future=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        connect_args={"command_timeout": settings.db_command_timeout},
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_async_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = create_session_maker(get_async_engine())
    return _session_maker


async def close_async_engine() -> None:
    """Dispose of the engine on shutdown and forget the cached factory."""
    global _session_maker

    try:
        await get_async_engine().dispose()
    except RuntimeError:
        # Event loop already closed (test teardown)
        logger.debug("Engine dispose skipped: event loop mismatch")

    get_async_engine.cache_clear()
    _session_maker = None
