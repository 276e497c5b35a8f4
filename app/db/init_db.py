import asyncio
import logging

from app.db.base import Base
from app.db.session import engine
from app import models  # noqa: F401 - registers tables on Base.metadata

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """
    Create missing tables for local development. Production schemas are managed by Alembic.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")


if __name__ == "__main__":
    asyncio.run(init_db())
