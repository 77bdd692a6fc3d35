"""Persistence for sync runs: cursor reads, user upserts, event inserts.

Each operation runs in its own short transaction on the shared engine.
Both writes are conflict-tolerant:

- upsert_user: INSERT ... ON CONFLICT (email) DO UPDATE, merging every
  mutable column as COALESCE(incoming, stored) so a sparse payload never
  blanks out data collected earlier.
- insert_event: INSERT ... ON CONFLICT (event_key) DO NOTHING RETURNING id;
  no returned row means the event was already ingested.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from src.outreach.core.database import dialect_insert
from src.outreach.core.exceptions import PersistenceError
from src.outreach.core.timestamps import ensure_utc, utcnow
from src.outreach.models import USER_MERGE_COLUMNS, EventSource, user_source_table
from src.outreach.namespaces.tables import validate_table_name
from src.outreach.schemas import EventSourceData, UserSourceData

logger = structlog.get_logger(__name__)

# metadata["timestamp_source"] for events stamped with insertion time; these
# rows never advance the cursor
INGESTED_TIMESTAMP = "ingested"


class SyncStore:
    """Database writes and cursor reads used by sync adapters.

    Args:
        engine: Shared async engine.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def last_sync_timestamp(self, platform: str) -> datetime | None:
        """Newest activity-stamped event_source.created_at for a platform, or None on first run."""
        table = EventSource.__table__
        timestamp_source = func.coalesce(table.c["metadata"]["timestamp_source"].as_string(), "")
        stmt = select(func.max(table.c.created_at)).where(
            table.c.platform == platform,
            timestamp_source != INGESTED_TIMESTAMP,
        )
        try:
            async with self._engine.connect() as conn:
                value = (await conn.execute(stmt)).scalar()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read sync cursor for {platform}: {exc}") from exc
        if value is None:
            return None
        if isinstance(value, str):
            # SQLite aggregates lose the column type and hand back text
            value = datetime.fromisoformat(value)
        return ensure_utc(value)

    async def upsert_user(self, table_name: str, user: UserSourceData) -> None:
        """Insert or merge one user into a namespace table.

        Raises:
            ConfigurationError: If the table name is unsafe.
            PersistenceError: If the statement fails.
        """
        table = user_source_table(validate_table_name(table_name))
        now = utcnow()
        values = {
            "email": user.email,
            "name": user.name,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "company": user.company,
            "title": user.title,
            "linkedin_profile": user.linkedin_profile,
            "platform": user.platform,
            "namespace": user.namespace,
            "metadata": user.metadata,
            "created_at": user.created_at or now,
            "updated_at": now,
        }
        try:
            async with self._engine.begin() as conn:
                stmt = dialect_insert(conn, table).values(**values)
                merge = {
                    column: func.coalesce(stmt.excluded[column], table.c[column])
                    for column in USER_MERGE_COLUMNS
                }
                merge["updated_at"] = stmt.excluded.updated_at
                await conn.execute(stmt.on_conflict_do_update(index_elements=["email"], set_=merge))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to upsert user into {table_name}: {exc}") from exc

    async def insert_event(self, event: EventSourceData) -> bool:
        """Insert an event unless its key was already ingested.

        Returns:
            True when a row was inserted, False for a duplicate key.

        Raises:
            PersistenceError: For any failure other than the key conflict.
        """
        table = EventSource.__table__
        metadata = dict(event.metadata)
        created_at = event.created_at
        if created_at is None:
            created_at = utcnow()
            metadata["timestamp_source"] = INGESTED_TIMESTAMP
        try:
            async with self._engine.begin() as conn:
                stmt = (
                    dialect_insert(conn, table)
                    .values(
                        event_key=event.event_key,
                        user_identity=event.user_identity,
                        event_type=event.event_type,
                        platform=event.platform,
                        metadata=metadata,
                        created_at=created_at,
                    )
                    .on_conflict_do_nothing(index_elements=["event_key"])
                    .returning(table.c.id)
                )
                inserted = (await conn.execute(stmt)).first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to insert event {event.event_key}: {exc}") from exc
        return inserted is not None
