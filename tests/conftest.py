"""Pytest configuration and fixtures"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from verdict.auth import create_access_token
from verdict.db import models  # noqa: F401
from verdict.db.database import Base, build_engine, get_db
from verdict.db.models import Profile
from verdict.main import create_app
from verdict.services.cache import EntityCache


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so concurrent sessions see each other's commits"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'verdict_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache() -> EntityCache:
    return EntityCache(default_ttl=60)


@pytest.fixture
def make_profile(session_factory):
    """Insert a profile directly, bypassing initialize_user"""

    async def _make(user_id: str, credits: int = 0, is_judge: bool = True, is_admin: bool = False) -> str:
        async with session_factory() as session:
            session.add(Profile(
                id=user_id,
                email=f"{user_id}@example.com",
                display_name=user_id,
                credits=credits,
                is_judge=is_judge,
                is_admin=is_admin,
            ))
            await session.commit()
        return user_id

    return _make


@pytest.fixture
def auth_headers():
    """Bearer headers for a user id"""

    def _headers(user_id: str, email: str | None = None) -> dict[str, str]:
        token = create_access_token(user_id, email or f"{user_id}@example.com")
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def client(session_factory, cache) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with overridden database dependency"""
    app = create_app(cache=cache)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
