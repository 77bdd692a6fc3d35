"""Pydantic schemas for the delta-sync pipeline.

Defines all structured types passed between pipeline stages:
- Enums: Platform, SyncState, RecordStage
- Key generation: EventDescriptor
- Platform payloads (normalised): CampaignRecord, ActivityRecord
- Persistence payloads: NamespaceRead, UserSourceData, EventSourceData
- Run reporting: SyncReport
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ── Enums ───────────────────────────────────────────────────────────────────


class Platform(str, Enum):
    """Outbound-marketing platforms with a sync adapter."""

    SMARTLEAD = "smartlead"
    LEMLIST = "lemlist"


SUPPORTED_PLATFORMS: frozenset[str] = frozenset(p.value for p in Platform)


class SyncState(str, Enum):
    """Run-level state of a PlatformSyncAdapter."""

    IDLE = "idle"
    FETCHING_CAMPAIGNS = "fetching_campaigns"
    FETCHING_ACTIVITIES = "fetching_activities"
    PROCESSING_RECORDS = "processing_records"
    DONE = "done"
    FAILED = "failed"


class RecordStage(str, Enum):
    """Per-record stage, reported alongside record failures."""

    RESOLVE_NAMESPACE = "resolve_namespace"
    ENSURE_TABLE = "ensure_table"
    VALIDATE = "validate"
    UPSERT_USER = "upsert_user"
    GENERATE_KEY = "generate_key"
    INSERT_EVENT = "insert_event"


# ── Key Generation ──────────────────────────────────────────────────────────


class EventDescriptor(BaseModel):
    """Identity of one external activity.

    Fields are deliberately loose (optional, str or int) so a malformed
    payload reaches EventKeyGenerator, which reports every problem as a
    ValidationError instead of failing during parsing.
    """

    model_config = ConfigDict(frozen=True)

    platform: str | None = None
    campaign_id: str | int | None = None
    event_type: str | None = None
    email: str | None = None
    activity_id: str | int | None = None
    timestamp: datetime | str | int | float | None = None


# ── Platform Payloads ───────────────────────────────────────────────────────


class CampaignRecord(BaseModel):
    """A platform campaign, normalised across platforms."""

    id: str
    name: str | None = None
    created_at: datetime | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class ActivityRecord(BaseModel):
    """A platform activity or lead, normalised across platforms."""

    activity_id: str | None = None
    event_type: str
    email: str | None = None
    timestamp: datetime | None = None
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    title: str | None = None
    linkedin_profile: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


# ── Persistence Payloads ────────────────────────────────────────────────────


class NamespaceRead(BaseModel):
    """Snapshot of a namespaces row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    keywords: list[str] = Field(default_factory=list)
    table_name: str
    priority: int = 0
    is_active: bool = True
    created_at: datetime | None = None


class UserSourceData(BaseModel):
    """Incoming user fields for a namespace user-table upsert.

    None means "unknown": the upsert keeps whatever is already stored.
    """

    email: str
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    title: str | None = None
    linkedin_profile: str | None = None
    platform: str | None = None
    namespace: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None

    @field_validator(
        "name", "first_name", "last_name", "company", "title", "linkedin_profile", mode="before"
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("email", mode="before")
    @classmethod
    def _normalise_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class EventSourceData(BaseModel):
    """An event_source row to insert."""

    event_key: str
    user_identity: str
    event_type: str
    platform: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    # None: the activity carried no timestamp; the store stamps insertion time
    created_at: datetime | None = None


# ── Run Reporting ───────────────────────────────────────────────────────────

MAX_REPORTED_ERRORS = 50


class SyncReport(BaseModel):
    """Totals for one adapter run."""

    platform: str
    started_at: datetime
    finished_at: datetime | None = None
    cursor: datetime | None = None
    full_sync: bool = False
    campaigns_total: int = 0
    campaigns_failed: int = 0
    examined: int = 0
    inserted: int = 0
    duplicates: int = 0
    skipped_stale: int = 0
    skipped_no_email: int = 0
    failed: int = 0
    cancelled: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.skipped_stale + self.skipped_no_email

    @property
    def processed(self) -> int:
        """Records that made it through every stage (inserted or already seen)."""
        return self.inserted + self.duplicates

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def add_error(self, message: str) -> None:
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)
