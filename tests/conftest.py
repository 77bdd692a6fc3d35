"""Shared test fixtures for the sync pipeline.

Provides:
- A per-test SQLite database (aiosqlite) with the shared tables created
- Settings pointing at that database with dummy platform API keys
- The real collaborators (repository, resolver, table manager, store, key generator)

SQLite accepts the same ON CONFLICT grammar as PostgreSQL, so the store and
table manager run unmodified against it.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.outreach.config import Settings
from src.outreach.core.database import init_db
from src.outreach.dedup.event_keys import EventKeyGenerator
from src.outreach.namespaces.repository import NamespaceRepository
from src.outreach.namespaces.resolver import NamespaceResolver
from src.outreach.namespaces.tables import TableManager
from src.outreach.sync.store import SyncStore


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite so every pooled connection sees the same data."""
    return f"sqlite+aiosqlite:///{tmp_path / 'outreach.db'}"


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=database_url,
        SMARTLEAD_API_KEY="sl-test-key",
        LEMLIST_API_KEY="ll-test-key",
        HTTP_MAX_RETRIES=2,
        DEFAULT_NAMESPACE="playmaker",
    )


@pytest_asyncio.fixture
async def engine(database_url) -> AsyncGenerator[AsyncEngine, None]:
    """Engine with namespaces and event_source created."""
    test_engine = create_async_engine(database_url)
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def repository(engine) -> NamespaceRepository:
    return NamespaceRepository(engine)


@pytest.fixture
def resolver(repository) -> NamespaceResolver:
    return NamespaceResolver(repository, default_namespace="playmaker", cache_ttl=300.0)


@pytest.fixture
def table_manager(engine) -> TableManager:
    return TableManager(engine)


@pytest.fixture
def store(engine) -> SyncStore:
    return SyncStore(engine)


@pytest.fixture
def key_generator() -> EventKeyGenerator:
    return EventKeyGenerator()
