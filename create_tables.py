#!/usr/bin/env python3
"""Create the Verdict database tables"""

import asyncio
import logging
import sys

from sqlalchemy import text

from verdict.config import settings
from verdict.db.database import Base, build_engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_tables(database_url: str | None = None) -> bool:
    """Create all tables; returns False on failure"""
    url = database_url or settings.database_url
    engine = build_engine(url)
    try:
        logger.info("Starting table creation...")
        logger.info(f"Database URL (masked): {url[:30]}...")

        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection successful")

        # Import models to register them with Base
        from verdict.db import models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")
        return True
    except Exception as e:
        logger.error(f"Failed to create tables: {e}", exc_info=True)
        return False
    finally:
        await engine.dispose()


if __name__ == "__main__":
    success = asyncio.run(create_tables())
    sys.exit(0 if success else 1)
