"""Per-namespace user table provisioning.

Each namespace keeps its users in ``<slug>_user_source``. Tables are created
on first use with idempotent DDL (CREATE TABLE / INDEX IF NOT EXISTS), so two
runs provisioning the same namespace at once both succeed.

Every derived identifier is checked against a strict allowlist before it
reaches any DDL or DML: namespace names come from operator-maintained rows
and are never trusted as SQL.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

import structlog
from sqlalchemy import func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.schema import CreateIndex, CreateTable

from src.outreach.core.exceptions import ConfigurationError, PersistenceError
from src.outreach.models import USER_TABLE_SUFFIX, user_source_indexes, user_source_table

logger = structlog.get_logger(__name__)

# Safe identifier: lowercase alphanumeric + underscore, within PostgreSQL's limit
TABLE_NAME_PATTERN = re.compile(r"^[a-z0-9_]+$")
MAX_IDENTIFIER_LENGTH = 63

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def table_name_for_namespace(namespace_name: str) -> str:
    """Derive the user table name for a namespace.

    ``"Apollo-Forge"`` -> ``"apollo_forge_user_source"``.
    """
    return _NON_ALNUM.sub("_", namespace_name.lower()) + USER_TABLE_SUFFIX


def validate_table_name(table_name: str) -> str:
    """Reject anything that is not a plain, short, lowercase identifier.

    Raises:
        ConfigurationError: If the name is empty, too long, or has other characters.
    """
    if not table_name or len(table_name) > MAX_IDENTIFIER_LENGTH or not TABLE_NAME_PATTERN.match(table_name):
        raise ConfigurationError(
            f"Unsafe table name {table_name!r}: must be 1-{MAX_IDENTIFIER_LENGTH} chars of [a-z0-9_]"
        )
    return table_name


class TableManager:
    """Provisions and inspects namespace user tables.

    Successfully provisioned table names are remembered for the life of the
    process so each namespace pays for DDL once. Concurrent first calls for
    the same namespace are serialised on a per-table lock.

    Args:
        engine: Shared async engine.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._provisioned: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    table_name_for_namespace = staticmethod(table_name_for_namespace)
    validate_table_name = staticmethod(validate_table_name)

    @property
    def provisioned_tables(self) -> frozenset[str]:
        return frozenset(self._provisioned)

    async def ensure_namespace_table_exists(self, namespace_name: str) -> str:
        """Make sure the namespace's user table and its indexes exist.

        Returns:
            The validated table name.

        Raises:
            ConfigurationError: If the derived table name is unsafe.
            PersistenceError: If the table could not be created.
        """
        table_name = validate_table_name(table_name_for_namespace(namespace_name))
        if table_name in self._provisioned:
            return table_name

        lock = self._locks.setdefault(table_name, asyncio.Lock())
        async with lock:
            if table_name in self._provisioned:
                return table_name
            await self._create_table(table_name)
            await self._create_indexes(table_name)
            self._provisioned.add(table_name)

        logger.info("tables.provisioned", namespace=namespace_name, table_name=table_name)
        return table_name

    async def _create_table(self, table_name: str) -> None:
        table = user_source_table(table_name)
        try:
            async with self._engine.begin() as conn:
                await conn.execute(CreateTable(table, if_not_exists=True))
        except SQLAlchemyError as exc:
            # Another process may have won the race between IF NOT EXISTS and CREATE
            if await self.table_exists(table_name):
                logger.info("tables.create_race_resolved", table_name=table_name)
                return
            raise PersistenceError(f"Failed to create table {table_name}: {exc}") from exc

    async def _create_indexes(self, table_name: str) -> None:
        for index in user_source_indexes(table_name):
            try:
                async with self._engine.begin() as conn:
                    await conn.execute(CreateIndex(index, if_not_exists=True))
            except SQLAlchemyError as exc:
                logger.warning(
                    "tables.index_create_failed",
                    table_name=table_name,
                    index=index.name,
                    error=str(exc),
                )

    # ── Inspection ──────────────────────────────────────────────────────────

    async def table_exists(self, table_name: str) -> bool:
        validate_table_name(table_name)
        try:
            async with self._engine.connect() as conn:
                return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(table_name))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to inspect table {table_name}: {exc}") from exc

    async def list_namespace_tables(self) -> list[str]:
        """Names of every existing ``*_user_source`` table, sorted."""
        try:
            async with self._engine.connect() as conn:
                names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list tables: {exc}") from exc
        return sorted(name for name in names if name.endswith(USER_TABLE_SUFFIX))

    async def get_table_stats(self, namespace_name: str) -> dict[str, Any]:
        """User counts for a namespace table, overall and per platform."""
        table_name = validate_table_name(table_name_for_namespace(namespace_name))
        stats: dict[str, Any] = {
            "namespace": namespace_name,
            "table_name": table_name,
            "exists": False,
            "total_users": 0,
            "by_platform": {},
        }
        if not await self.table_exists(table_name):
            return stats

        table = user_source_table(table_name)
        stmt = select(table.c.platform, func.count()).group_by(table.c.platform)
        try:
            async with self._engine.connect() as conn:
                rows = (await conn.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read stats for {table_name}: {exc}") from exc

        by_platform = {(platform or "unknown"): count for platform, count in rows}
        stats.update(exists=True, total_users=sum(by_platform.values()), by_platform=by_platform)
        return stats
