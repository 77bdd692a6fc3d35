"""Platform sync adapter base class -- the delta-sync run template.

Every platform (Smartlead, Lemlist) implements this ABC. run() drives:

    IDLE -> FETCHING_CAMPAIGNS -> FETCHING_ACTIVITIES -> PROCESSING_RECORDS -> DONE | FAILED

and, per record:

    RESOLVE_NAMESPACE (once per campaign) -> ENSURE_TABLE -> VALIDATE
        -> UPSERT_USER -> GENERATE_KEY -> INSERT_EVENT

Failure scopes:
- campaign list fetch fails -> run fails (state FAILED, exception propagates)
- one campaign's namespace lookup or activity fetch fails for any reason other
  than ConfigurationError -> that campaign is counted in campaigns_failed and
  skipped
- one record fails -> counted in failed, logged with its identity, loop continues
- ConfigurationError anywhere -> run fails; no record can succeed either

The cursor (newest stored event for the platform, minus a lookback window)
only saves work. Correctness comes from the unique event_key constraint, so
overlapping runs and re-fetched pages are harmless.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any

import structlog

from src.outreach.clients.base import PlatformClient
from src.outreach.core.exceptions import ConfigurationError
from src.outreach.core.monitoring import record_outcome, track_sync_run
from src.outreach.core.timestamps import utcnow
from src.outreach.dedup.event_keys import EventKeyGenerator
from src.outreach.namespaces.resolver import NamespaceResolver
from src.outreach.namespaces.tables import TableManager
from src.outreach.schemas import (
    ActivityRecord,
    CampaignRecord,
    EventDescriptor,
    EventSourceData,
    RecordStage,
    SyncReport,
    SyncState,
    UserSourceData,
)
from src.outreach.sync.store import SyncStore

logger = structlog.get_logger(__name__)

DEFAULT_CURSOR_LOOKBACK = timedelta(minutes=15)


def optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class PlatformSyncAdapter(ABC):
    """Incremental ingestion of one platform's campaign activity.

    Collaborators are injected so that adapters for different platforms can
    share one key generator, resolver, table manager and store.

    Args:
        client: REST client for the platform.
        store: Cursor reads and conflict-tolerant writes.
        key_generator: Event key builder/validator.
        resolver: Campaign name -> namespace routing.
        table_manager: Namespace user-table provisioning.
        cursor_lookback: How far before the cursor records are still examined.
    """

    platform: str = ""

    def __init__(
        self,
        client: PlatformClient,
        *,
        store: SyncStore,
        key_generator: EventKeyGenerator,
        resolver: NamespaceResolver,
        table_manager: TableManager,
        cursor_lookback: timedelta = DEFAULT_CURSOR_LOOKBACK,
    ) -> None:
        self._client = client
        self._store = store
        self._keys = key_generator
        self._resolver = resolver
        self._tables = table_manager
        self._cursor_lookback = cursor_lookback
        self._state = SyncState.IDLE

    @property
    def state(self) -> SyncState:
        return self._state

    # ── Platform hooks ──────────────────────────────────────────────────────

    @abstractmethod
    def normalise_campaign(self, raw: dict[str, Any]) -> CampaignRecord | None:
        """Campaign payload -> CampaignRecord, or None when it has no id."""
        ...

    @abstractmethod
    def normalise_activity(self, raw: dict[str, Any]) -> ActivityRecord:
        """Activity/lead payload -> ActivityRecord."""
        ...

    @abstractmethod
    def build_descriptor(self, campaign: CampaignRecord, activity: ActivityRecord) -> EventDescriptor:
        """Key identity for one activity."""
        ...

    async def fetch_campaigns(self) -> list[CampaignRecord]:
        campaigns = []
        for raw in await self._client.list_campaigns():
            campaign = self.normalise_campaign(raw)
            if campaign is None:
                logger.warning(f"{self.platform}_sync.campaign_without_id", payload=raw)
                continue
            campaigns.append(campaign)
        return campaigns

    async def fetch_activities(self, campaign: CampaignRecord) -> list[dict[str, Any]]:
        return await self._client.list_campaign_activities(campaign.id)

    # ── Run template ────────────────────────────────────────────────────────

    async def run(
        self,
        *,
        full_sync: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncReport:
        """Run one delta sync.

        Args:
            full_sync: Ignore the cursor and examine every fetched record.
            cancel_event: When set, the run stops before the next record.

        Returns:
            SyncReport with per-outcome totals.

        Raises:
            ConfigurationError: Invalid API key or unsafe table identifier.
            TransientNetworkError: The campaign list could not be fetched.
            PersistenceError: The cursor could not be read.
        """
        report = SyncReport(platform=self.platform, started_at=utcnow(), full_sync=full_sync)
        self._state = SyncState.IDLE

        async with track_sync_run(self.platform) as tracker:
            try:
                cutoff: datetime | None = None
                if not full_sync:
                    report.cursor = await self._store.last_sync_timestamp(self.platform)
                    if report.cursor is not None:
                        cutoff = report.cursor - self._cursor_lookback

                logger.info(
                    f"{self.platform}_sync.started",
                    full_sync=full_sync,
                    cursor=report.cursor.isoformat() if report.cursor else None,
                )

                self._state = SyncState.FETCHING_CAMPAIGNS
                campaigns = await self.fetch_campaigns()
                report.campaigns_total = len(campaigns)

                for campaign in campaigns:
                    if cancel_event is not None and cancel_event.is_set():
                        report.cancelled = True
                    if report.cancelled:
                        break
                    await self._sync_campaign(campaign, cutoff, report, cancel_event)
            except Exception as exc:
                self._state = SyncState.FAILED
                report.finished_at = utcnow()
                logger.error(
                    f"{self.platform}_sync.failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    examined=report.examined,
                )
                raise

            self._state = SyncState.DONE
            tracker["status"] = "cancelled" if report.cancelled else "success"

        report.finished_at = utcnow()
        self._record_metrics(report)
        logger.info(
            f"{self.platform}_sync.complete",
            campaigns=report.campaigns_total,
            campaigns_failed=report.campaigns_failed,
            examined=report.examined,
            inserted=report.inserted,
            duplicates=report.duplicates,
            skipped=report.skipped,
            failed=report.failed,
            cancelled=report.cancelled,
            duration_seconds=report.duration_seconds,
        )
        return report

    async def _sync_campaign(
        self,
        campaign: CampaignRecord,
        cutoff: datetime | None,
        report: SyncReport,
        cancel_event: asyncio.Event | None,
    ) -> None:
        self._state = SyncState.FETCHING_ACTIVITIES
        where = RecordStage.RESOLVE_NAMESPACE.value
        try:
            namespace = await self._resolver.detect_namespace_from_campaign(campaign.name)
            where = "fetch_activities"
            activities = await self.fetch_activities(campaign)
        except ConfigurationError:
            raise
        except Exception as exc:
            report.campaigns_failed += 1
            report.add_error(f"campaign {campaign.id} ({where}): {exc}")
            logger.error(
                f"{self.platform}_sync.campaign_failed",
                campaign_id=campaign.id,
                campaign=campaign.name,
                stage=where,
                error=str(exc),
            )
            return

        logger.info(
            f"{self.platform}_sync.campaign_started",
            campaign_id=campaign.id,
            campaign=campaign.name,
            namespace=namespace,
            activities=len(activities),
        )

        self._state = SyncState.PROCESSING_RECORDS
        for raw in activities:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                logger.info(f"{self.platform}_sync.cancelled", campaign_id=campaign.id)
                return
            report.examined += 1
            await self._process_record(campaign, namespace, raw, cutoff, report)

    async def _process_record(
        self,
        campaign: CampaignRecord,
        namespace: str,
        raw: dict[str, Any],
        cutoff: datetime | None,
        report: SyncReport,
    ) -> None:
        stage = RecordStage.VALIDATE
        activity: ActivityRecord | None = None
        try:
            activity = self.normalise_activity(raw)

            if cutoff is not None and activity.timestamp is not None and activity.timestamp < cutoff:
                report.skipped_stale += 1
                return
            if not activity.email or not activity.email.strip():
                report.skipped_no_email += 1
                logger.debug(
                    f"{self.platform}_sync.record_without_email",
                    campaign_id=campaign.id,
                    activity_id=activity.activity_id,
                )
                return

            stage = RecordStage.ENSURE_TABLE
            table_name = await self._tables.ensure_namespace_table_exists(namespace)

            stage = RecordStage.VALIDATE
            descriptor = self.build_descriptor(campaign, activity)
            self._keys.validate(descriptor)

            stage = RecordStage.UPSERT_USER
            email = activity.email.strip().lower()
            await self._store.upsert_user(table_name, self._user_data(campaign, namespace, activity))

            stage = RecordStage.GENERATE_KEY
            event_key = self._keys.generate_event_key(descriptor)

            stage = RecordStage.INSERT_EVENT
            inserted = await self._store.insert_event(
                EventSourceData(
                    event_key=event_key,
                    user_identity=email,
                    event_type=activity.event_type,
                    platform=self.platform,
                    metadata={
                        "campaign_id": campaign.id,
                        "campaign_name": campaign.name,
                        "namespace": namespace,
                        "table_name": table_name,
                        "activity_id": activity.activity_id,
                        "raw": activity.raw,
                    },
                    created_at=activity.timestamp,
                )
            )
        except ConfigurationError:
            raise
        except Exception as exc:
            identity = (activity.activity_id or activity.email) if activity else None
            report.failed += 1
            report.add_error(f"campaign {campaign.id} record {identity} ({stage.value}): {exc}")
            logger.error(
                f"{self.platform}_sync.record_failed",
                campaign_id=campaign.id,
                activity_id=activity.activity_id if activity else None,
                email=activity.email if activity else None,
                stage=stage.value,
                error=str(exc),
            )
            return

        if inserted:
            report.inserted += 1
        else:
            report.duplicates += 1

    def _user_data(self, campaign: CampaignRecord, namespace: str, activity: ActivityRecord) -> UserSourceData:
        name = activity.name
        if not name:
            name = " ".join(part for part in (activity.first_name, activity.last_name) if part) or None
        return UserSourceData(
            email=activity.email,
            name=name,
            first_name=activity.first_name,
            last_name=activity.last_name,
            company=activity.company,
            title=activity.title,
            linkedin_profile=activity.linkedin_profile,
            platform=self.platform,
            namespace=namespace,
            metadata={
                "last_campaign_id": campaign.id,
                "last_campaign_name": campaign.name,
                "last_event_type": activity.event_type,
            },
            created_at=activity.timestamp,
        )

    def _record_metrics(self, report: SyncReport) -> None:
        record_outcome(self.platform, "inserted", report.inserted)
        record_outcome(self.platform, "duplicate", report.duplicates)
        record_outcome(self.platform, "skipped_stale", report.skipped_stale)
        record_outcome(self.platform, "skipped_no_email", report.skipped_no_email)
        record_outcome(self.platform, "failed", report.failed)
