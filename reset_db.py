"""
Drop and recreate every table of the rental engine.

Development helper: run with the package installed (pip install -e .).
"""

import asyncio
import logging

from rental_engine.core.database import engine
from rental_engine.models import Base

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger("reset_db")


async def reset():
    logger.info("Connecting to the database, dropping tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        logger.info("Tables dropped. Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Database reset")


if __name__ == "__main__":
    asyncio.run(reset())
