"""Lemlist delta sync.

Each campaign activity becomes one event. Lemlist activity types are mapped
to canonical event types (emailsOpened -> email_opened, ...) before keying;
types missing from the table fall back to snake_case rather than being
dropped.
"""

from __future__ import annotations

from typing import Any

from src.outreach.core.timestamps import parse_timestamp_or_none
from src.outreach.dedup.event_keys import lemlist_descriptor
from src.outreach.schemas import ActivityRecord, CampaignRecord, EventDescriptor, Platform
from src.outreach.sync.base import PlatformSyncAdapter, optional_str
from src.outreach.sync.event_types import map_lemlist_event_type


class LemlistSync(PlatformSyncAdapter):
    """Ingests Lemlist campaign activities."""

    platform = Platform.LEMLIST.value

    def normalise_campaign(self, raw: dict[str, Any]) -> CampaignRecord | None:
        campaign_id = raw.get("_id") or raw.get("id")
        if not campaign_id:
            return None
        return CampaignRecord(
            id=campaign_id,
            name=raw.get("name"),
            created_at=parse_timestamp_or_none(raw.get("createdAt")),
            raw=raw,
        )

    def normalise_activity(self, raw: dict[str, Any]) -> ActivityRecord:
        lead = raw.get("lead") or {}
        return ActivityRecord(
            activity_id=optional_str(raw.get("_id") or raw.get("id")),
            event_type=map_lemlist_event_type(raw.get("type")),
            email=lead.get("email") or raw.get("leadEmail"),
            timestamp=parse_timestamp_or_none(raw.get("date") or raw.get("createdAt")),
            first_name=lead.get("firstName") or raw.get("leadFirstName"),
            last_name=lead.get("lastName") or raw.get("leadLastName"),
            company=lead.get("companyName") or raw.get("leadCompanyName"),
            title=lead.get("jobTitle"),
            linkedin_profile=lead.get("linkedinUrl") or raw.get("linkedinUrl"),
            raw=raw,
        )

    def build_descriptor(self, campaign: CampaignRecord, activity: ActivityRecord) -> EventDescriptor:
        return lemlist_descriptor(campaign.id, activity.raw, activity.event_type)
