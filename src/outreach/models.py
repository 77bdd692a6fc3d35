"""SQLAlchemy models for the sync pipeline's relational contract.

Shared tables (declared on Base.metadata, created by init_db()):
- namespaces: tenant cohorts with campaign-name keywords (read-only to sync)
- event_source: one row per physical activity, unique on event_key

Per-namespace tables (built at runtime, provisioned by TableManager):
- <slug>_user_source: one row per email within a namespace

The unique constraint on event_source.event_key is what makes ingestion
idempotent; the in-process key cache is instrumentation only.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime
from functools import lru_cache
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.outreach.core.database import Base

# SQL NULL (not JSON null) for None so COALESCE merges skip missing metadata
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

# Suffix shared by every per-namespace user table.
USER_TABLE_SUFFIX = "_user_source"


class Namespace(Base):
    """Tenant cohort matched against campaign names by keyword."""

    __tablename__ = "namespaces"
    __table_args__ = (
        Index("idx_namespaces_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    keywords: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class EventSource(Base):
    """A deduplicated platform activity."""

    __tablename__ = "event_source"
    __table_args__ = (
        Index("idx_event_source_platform_created_at", "platform", "created_at"),
        Index("idx_event_source_user_identity", "user_identity"),
        Index("idx_event_source_event_type", "event_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    user_identity: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    # "metadata" is reserved on declarative classes, so the attribute is renamed
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


# ── Per-namespace user tables ───────────────────────────────────────────────

# Mutable columns merged with COALESCE(incoming, stored) on upsert.
USER_MERGE_COLUMNS = (
    "name",
    "first_name",
    "last_name",
    "company",
    "title",
    "linkedin_profile",
    "platform",
    "namespace",
    "metadata",
)


@lru_cache(maxsize=None)
def user_source_table(table_name: str) -> Table:
    """Build the Core Table for a namespace's user table.

    Each table gets its own MetaData so runtime-provisioned tables never leak
    into Base.metadata.create_all(). The caller must have validated
    ``table_name`` against the identifier allowlist first.
    """
    metadata = MetaData()
    return Table(
        table_name,
        metadata,
        Column("id", Uuid, primary_key=True, default=uuid.uuid4),
        Column("email", String(255), nullable=False, unique=True),
        Column("name", String(255)),
        Column("first_name", String(255)),
        Column("last_name", String(255)),
        Column("company", String(255)),
        Column("title", String(255)),
        Column("linkedin_profile", Text),
        Column("platform", String(50)),
        Column("namespace", String(50)),
        Column("metadata", JSONType),
        Column("created_at", DateTime(timezone=True), server_default=func.now()),
        Column("updated_at", DateTime(timezone=True), server_default=func.now()),
    )


def _index_name(table_name: str, suffix: str) -> str:
    """Index name within PostgreSQL's 63-char identifier limit."""
    name = f"idx_{table_name}_{suffix}"
    if len(name) <= 63:
        return name
    digest = hashlib.sha1(table_name.encode("utf-8")).hexdigest()[:12]
    return f"idx_{digest}_{suffix}"


@lru_cache(maxsize=None)
def user_source_indexes(table_name: str) -> tuple[Index, ...]:
    """Supporting indexes for a namespace user table.

    Email uniqueness comes from the column's UNIQUE constraint, which is
    created together with the table and backs ON CONFLICT (email).
    """
    table = user_source_table(table_name)
    return (
        Index(_index_name(table_name, "platform"), table.c.platform),
        Index(_index_name(table_name, "created_at"), table.c.created_at.desc()),
        Index(_index_name(table_name, "updated_at"), table.c.updated_at),
        Index(_index_name(table_name, "linkedin_profile"), table.c.linkedin_profile),
    )
