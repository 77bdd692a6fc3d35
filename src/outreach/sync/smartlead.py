"""Smartlead delta sync.

Smartlead exposes leads rather than an activity feed, so every campaign lead
becomes one ``lead_created`` event keyed by the lead id (falling back to the
campaign-lead mapping id) and timestamped with the mapping's created_at.
"""

from __future__ import annotations

from typing import Any

from src.outreach.core.timestamps import parse_timestamp_or_none
from src.outreach.dedup.event_keys import smartlead_descriptor
from src.outreach.schemas import ActivityRecord, CampaignRecord, EventDescriptor, Platform
from src.outreach.sync.base import PlatformSyncAdapter, optional_str
from src.outreach.sync.event_types import SMARTLEAD_LEAD_CREATED


class SmartleadSync(PlatformSyncAdapter):
    """Ingests Smartlead campaign leads."""

    platform = Platform.SMARTLEAD.value

    def normalise_campaign(self, raw: dict[str, Any]) -> CampaignRecord | None:
        if raw.get("id") is None:
            return None
        return CampaignRecord(
            id=raw["id"],
            name=raw.get("name"),
            created_at=parse_timestamp_or_none(raw.get("created_at")),
            raw=raw,
        )

    def normalise_activity(self, raw: dict[str, Any]) -> ActivityRecord:
        lead = raw.get("lead") or raw
        activity_id = lead.get("id")
        if activity_id is None or activity_id == "":
            activity_id = raw.get("campaign_lead_map_id")
        return ActivityRecord(
            activity_id=optional_str(activity_id),
            event_type=SMARTLEAD_LEAD_CREATED,
            email=lead.get("email"),
            timestamp=parse_timestamp_or_none(raw.get("created_at") or lead.get("created_at")),
            first_name=lead.get("first_name"),
            last_name=lead.get("last_name"),
            company=lead.get("company_name"),
            title=lead.get("title") or lead.get("job_title"),
            linkedin_profile=lead.get("linkedin_profile"),
            raw=raw,
        )

    def build_descriptor(self, campaign: CampaignRecord, activity: ActivityRecord) -> EventDescriptor:
        return smartlead_descriptor(campaign.id, activity.raw)
