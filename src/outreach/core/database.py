"""Async SQLAlchemy engine and declarative base.

Provides:
- Base: Declarative base for the shared tables (namespaces, event_source)
- get_engine(): Lazily created engine singleton backed by the shared pool
- dialect_insert(): PostgreSQL or SQLite insert construct for ON CONFLICT clauses
- init_db() / close_db(): Startup table creation and pool disposal

Per-namespace user tables are not declared here; they are built at runtime
by src.outreach.models.user_source_table() and provisioned by TableManager.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import MetaData, Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.outreach.config import get_settings

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        kwargs: dict[str, Any] = {"echo": False}
        if not settings.DATABASE_URL.startswith("sqlite"):
            kwargs.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_pre_ping=True,
            )
        _engine = create_async_engine(settings.DATABASE_URL, **kwargs)
    return _engine


# ── Declarative Base ────────────────────────────────────────────────────────


class Base(DeclarativeBase):
    """Base class for shared tables (namespaces, event_source)."""

    metadata = MetaData()


# ── Dialect helpers ─────────────────────────────────────────────────────────


def dialect_insert(conn: AsyncConnection, table: Table) -> Any:
    """Return a dialect-specific INSERT supporting ON CONFLICT clauses.

    Both PostgreSQL and SQLite (>= 3.24) accept the same
    ``ON CONFLICT (...) DO NOTHING / DO UPDATE`` grammar.
    """
    if conn.dialect.name == "postgresql":
        return postgresql.insert(table)
    if conn.dialect.name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Unsupported dialect for conflict-tolerant inserts: {conn.dialect.name}")


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create the shared tables if they don't exist."""
    # Register ORM models on Base.metadata before create_all
    import src.outreach.models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
