"""Database engine, session factory and the ``get_db`` dependency"""

import logging
import os
from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from verdict.config import settings

logger = logging.getLogger(__name__)

PLACEHOLDER_CREDENTIALS = "user:password@localhost"


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine; SQLite gets no connection pool tuning"""
    if not database_url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_size", 20)
        kwargs.setdefault("max_overflow", 40)
    return create_async_engine(database_url, **kwargs)


def database_configured() -> bool:
    return PLACEHOLDER_CREDENTIALS not in settings.database_url or "DATABASE_URL" in os.environ


engine = build_engine(settings.database_url, echo=settings.app_debug and settings.log_level == "DEBUG")

# Services keep using returned objects after commit
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def init_db() -> None:
    """Create missing tables; the app still starts when the database is unreachable"""
    from verdict.db import models  # noqa: F401

    if not database_configured():
        logger.warning("DATABASE_URL not set, skipping table creation")
        return

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        return
    logger.info("Database tables ready")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database connections closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session per request. Services commit their own units of work."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
