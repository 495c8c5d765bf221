"""Schema management for the SQL document store."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from mockquiz.app.core.logging import get_logger
from mockquiz.app.db import models  # noqa: F401 - registers the documents table
from mockquiz.app.db.async_session import get_async_engine
from mockquiz.app.db.base import Base

logger = get_logger(__name__)


async def init_database(drop_first: bool = False, engine: AsyncEngine | None = None) -> None:
    """Create the ``documents`` table if it does not exist.

    Args:
        drop_first: Drop the table (and all documents) before creating it.
        engine: Engine to use. Defaults to the application engine.
    """
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        if drop_first:
            logger.warning("Dropping document store tables")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def verify_connection(engine: AsyncEngine | None = None) -> bool:
    """Return True if ``SELECT 1`` succeeds, logging the failure otherwise."""
    try:
        engine = engine or get_async_engine()
        async with engine.connect() as conn:
            return (await conn.execute(text("SELECT 1"))).scalar() == 1
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
