"""Database initialization utilities."""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from app.db.base import Base

# Register models on the shared metadata
import app.models  # noqa: F401

logger = logging.getLogger(__name__)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all database tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")

