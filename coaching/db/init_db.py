import logging

from sqlalchemy.ext.asyncio import AsyncEngine

# Import models so every table is registered on Base.metadata
import coaching.auth.models  # noqa: F401
import coaching.core.models  # noqa: F401
from coaching.db.session import Base, engine

logger = logging.getLogger(__name__)


async def create_tables(bind: AsyncEngine = engine) -> None:
    """Create missing tables. Existing tables are left untouched."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured (%d tables)", len(Base.metadata.tables))
