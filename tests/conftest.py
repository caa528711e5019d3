"""Shared test fixtures.

Each test gets a throw-away SQLite file (aiosqlite) with the schema created
from the ORM metadata. Redis is not initialised: rate limiting passes through
and pub/sub notifications are skipped.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.config import get_settings
from overunder.database import close_db, get_engine, init_db
from overunder.db import models  # noqa: F401
from overunder.db.base import Base
from overunder.groups.service import ensure_global_group
from tests.factories import ADMIN_KEY, open_session


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch) -> AsyncGenerator[str, None]:
    """Point the app at a fresh SQLite file and create the schema."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'overunder_test.db'}"
    monkeypatch.setenv("OU_DATABASE_URL", url)
    monkeypatch.setenv("OU_ADMIN_API_KEY", ADMIN_KEY)
    monkeypatch.setenv("OU_JWT_SECRET", "test-secret-for-hs256-signing-0123456789")
    monkeypatch.setenv("OU_LOG_FORMAT", "console")
    get_settings.cache_clear()

    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with open_session() as session:
        await ensure_global_group(session)
        await session.commit()

    yield url

    await close_db()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_session(database: str) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for test setup and assertions."""
    async with open_session() as session:
        yield session


@pytest_asyncio.fixture
async def client(database: str) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client driving the app in-process."""
    from overunder.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
