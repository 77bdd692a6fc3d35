"""Tests for the Smartlead/Lemlist sync adapters and their wiring.

Adapters run against the per-test SQLite database with real collaborators;
the platform clients are AsyncMocks or run over httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import func, select

from src.outreach.clients.lemlist import LemlistClient
from src.outreach.clients.smartlead import SmartleadClient
from src.outreach.core.exceptions import ConfigurationError, PersistenceError, TransientNetworkError
from src.outreach.models import EventSource, user_source_table
from src.outreach.namespaces.resolver import NamespaceResolver
from src.outreach.schemas import SyncReport, SyncState
from src.outreach.sync.base import PlatformSyncAdapter
from src.outreach.sync.event_types import map_lemlist_event_type
from src.outreach.sync.factory import build_sync_adapter, build_sync_adapters, run_platform_sync
from src.outreach.sync.lemlist import LemlistSync
from src.outreach.sync.smartlead import SmartleadSync
from src.outreach.sync.store import INGESTED_TIMESTAMP

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── Helpers ────────────────────────────────────────────────────────────────


def _lead(i: int, *, email: str | None = None, at: datetime | None = None) -> dict:
    """A Smartlead campaign-lead entry."""
    return {
        "campaign_lead_map_id": 10_000 + i,
        "created_at": (at or BASE_TIME + timedelta(minutes=i)).isoformat(),
        "lead": {
            "id": i,
            "email": f"lead{i}@example.com" if email is None else email,
            "first_name": f"First{i}",
            "last_name": "Lead",
            "company_name": "Acme",
        },
    }


def _activity(i: int, activity_type: str = "emailsOpened", *, email: str | None = None) -> dict:
    """A Lemlist activity entry."""
    return {
        "_id": f"act_{i}",
        "type": activity_type,
        "date": (BASE_TIME + timedelta(minutes=i)).isoformat(),
        "leadEmail": f"person{i}@example.com" if email is None else email,
        "lead": {"firstName": f"Person{i}", "companyName": "Nebula Inc"},
    }


def _client(cls, campaigns: list[dict], activities) -> AsyncMock:
    client = AsyncMock(spec=cls)
    client.list_campaigns.return_value = campaigns
    if callable(activities):
        client.list_campaign_activities.side_effect = activities
    else:
        client.list_campaign_activities.return_value = activities
    return client


@pytest.fixture
def make_adapter(store, key_generator, resolver, table_manager):
    def _make(adapter_cls: type[PlatformSyncAdapter], client, **overrides) -> PlatformSyncAdapter:
        collaborators = {
            "store": store,
            "key_generator": key_generator,
            "resolver": resolver,
            "table_manager": table_manager,
        }
        collaborators.update(overrides)
        return adapter_cls(client, **collaborators)

    return _make


async def _count(engine, table, *where) -> int:
    stmt = select(func.count()).select_from(table)
    for clause in where:
        stmt = stmt.where(clause)
    async with engine.connect() as conn:
        return (await conn.execute(stmt)).scalar_one()


# ── Adapter Contract ───────────────────────────────────────────────────────


class TestAdapterABC:
    """PlatformSyncAdapter defines the platform hooks."""

    def test_abstract_hooks(self):
        assert PlatformSyncAdapter.__abstractmethods__ == {
            "normalise_campaign",
            "normalise_activity",
            "build_descriptor",
        }

    async def test_new_adapter_is_idle(self, make_adapter):
        adapter = make_adapter(SmartleadSync, _client(SmartleadClient, [], []))
        assert adapter.state == SyncState.IDLE


# ── Smartlead Runs ─────────────────────────────────────────────────────────


class TestSmartleadSync:
    """Full runs against SQLite."""

    async def test_first_run_inserts_everything(self, engine, make_adapter):
        client = _client(SmartleadClient, [{"id": 1, "name": "Spring Outbound"}], [_lead(i) for i in range(5)])
        adapter = make_adapter(SmartleadSync, client)

        report = await adapter.run()

        assert isinstance(report, SyncReport)
        assert adapter.state == SyncState.DONE
        assert report.cursor is None
        assert report.campaigns_total == 1
        assert report.examined == 5
        assert report.inserted == 5
        assert report.duplicates == 0
        assert report.finished_at is not None
        assert await _count(engine, EventSource.__table__) == 5
        assert await _count(engine, user_source_table("playmaker_user_source")) == 5

        async with engine.connect() as conn:
            event_types = (await conn.execute(select(EventSource.__table__.c.event_type).distinct())).scalars().all()
        assert event_types == ["lead_created"]

    async def test_rerun_is_idempotent(self, engine, make_adapter):
        client = _client(SmartleadClient, [{"id": 1, "name": "Spring Outbound"}], [_lead(i) for i in range(5)])
        adapter = make_adapter(SmartleadSync, client)

        await adapter.run()
        second = await adapter.run(full_sync=True)

        assert second.inserted == 0
        assert second.duplicates == 5
        assert second.processed == 5
        assert await _count(engine, EventSource.__table__) == 5

    async def test_overlapping_window_is_deduplicated_not_skipped(self, engine, make_adapter):
        """Records inside the lookback window are re-examined and land as duplicates."""
        leads = [_lead(i) for i in range(3)]
        client = _client(SmartleadClient, [{"id": 1, "name": "Spring"}], leads)
        adapter = make_adapter(SmartleadSync, client)

        await adapter.run()
        client.list_campaign_activities.return_value = leads + [_lead(3)]
        second = await adapter.run()

        assert second.cursor == BASE_TIME + timedelta(minutes=2)
        assert second.skipped_stale == 0
        assert second.duplicates == 3
        assert second.inserted == 1

    async def test_records_older_than_cursor_window_are_skipped(self, make_adapter):
        client = _client(SmartleadClient, [{"id": 1, "name": "Spring"}], [_lead(1, at=BASE_TIME)])
        adapter = make_adapter(SmartleadSync, client)
        await adapter.run()

        old = _lead(2, at=BASE_TIME - timedelta(hours=2))
        undated = _lead(3)
        undated["created_at"] = None
        client.list_campaign_activities.return_value = [old, undated]
        report = await adapter.run()

        assert report.skipped_stale == 1
        assert report.inserted == 1

    async def test_undated_record_does_not_advance_cursor(self, engine, make_adapter):
        client = _client(SmartleadClient, [{"id": 1, "name": "Spring"}], [_lead(1, at=BASE_TIME)])
        adapter = make_adapter(SmartleadSync, client)
        await adapter.run()

        undated = _lead(2)
        undated["created_at"] = None
        client.list_campaign_activities.return_value = [undated]
        assert (await adapter.run()).inserted == 1

        late = _lead(3, at=BASE_TIME - timedelta(minutes=10))
        client.list_campaign_activities.return_value = [late]
        report = await adapter.run()

        assert report.cursor == BASE_TIME
        assert report.skipped_stale == 0
        assert report.inserted == 1
        async with engine.connect() as conn:
            metadata = (
                await conn.execute(
                    select(EventSource.__table__.c["metadata"]).where(
                        EventSource.__table__.c.user_identity == "lead2@example.com"
                    )
                )
            ).scalar_one()
        assert metadata["timestamp_source"] == INGESTED_TIMESTAMP

    async def test_concurrent_runs_collapse_to_one_row_per_activity(self, engine, make_adapter):
        leads = [_lead(i) for i in range(5)]
        client = _client(SmartleadClient, [{"id": 1, "name": "Spring"}], leads)
        adapter = make_adapter(SmartleadSync, client)

        first, second = await asyncio.gather(adapter.run(), adapter.run())

        assert first.failed == second.failed == 0
        assert first.inserted + second.inserted == 5
        assert first.processed + second.processed == 10
        assert await _count(engine, EventSource.__table__) == 5
        assert await _count(engine, user_source_table("playmaker_user_source")) == 5

    async def test_full_sync_ignores_cursor(self, make_adapter):
        client = _client(SmartleadClient, [{"id": 1, "name": "Spring"}], [_lead(1, at=BASE_TIME)])
        adapter = make_adapter(SmartleadSync, client)
        await adapter.run()

        client.list_campaign_activities.return_value = [_lead(2, at=BASE_TIME - timedelta(days=30))]
        report = await adapter.run(full_sync=True)

        assert report.cursor is None
        assert report.skipped_stale == 0
        assert report.inserted == 1

    async def test_partial_failure_isolated(self, engine, make_adapter):
        """100 leads: #42 has no email, #77 a malformed one; the other 98 land."""
        leads = [_lead(i) for i in range(1, 101)]
        leads[41]["lead"]["email"] = ""
        leads[76]["lead"]["email"] = "not-an-email"
        client = _client(SmartleadClient, [{"id": 1, "name": "Spring"}], leads)
        adapter = make_adapter(SmartleadSync, client)

        report = await adapter.run()

        assert report.examined == 100
        assert report.processed == 98
        assert report.inserted == 98
        assert report.skipped_no_email == 1
        assert report.failed == 1
        assert report.skipped + report.failed == 2
        assert any("validate" in error and "77" in error for error in report.errors)
        assert adapter.state == SyncState.DONE
        assert await _count(engine, EventSource.__table__) == 98
        assert await _count(engine, user_source_table("playmaker_user_source")) == 98

    async def test_campaigns_routed_by_keyword(self, engine, repository, make_adapter):
        await repository.create_namespace("apollo-forge", ["apollo"])

        def activities(campaign_id):
            return [_lead(1)] if campaign_id == "1" else [_lead(2)]

        client = _client(
            SmartleadClient,
            [{"id": 1, "name": "APOLLO Q3"}, {"id": 2, "name": "Unrelated"}],
            activities,
        )
        report = await make_adapter(SmartleadSync, client).run()

        assert report.inserted == 2
        assert await _count(engine, user_source_table("apollo_forge_user_source")) == 1
        assert await _count(engine, user_source_table("playmaker_user_source")) == 1

    async def test_campaign_without_id_is_ignored(self, make_adapter):
        client = _client(SmartleadClient, [{"name": "no id"}, {"id": 2, "name": "ok"}], [_lead(1)])
        report = await make_adapter(SmartleadSync, client).run()
        assert report.campaigns_total == 1
        client.list_campaign_activities.assert_awaited_once_with("2")


# ── Failure Scopes ─────────────────────────────────────────────────────────


class TestFailureScopes:
    """Run-level vs campaign-level vs record-level failures."""

    async def test_campaign_fetch_failure_fails_run(self, make_adapter):
        client = AsyncMock(spec=SmartleadClient)
        client.list_campaigns.side_effect = TransientNetworkError("down", platform="smartlead")
        adapter = make_adapter(SmartleadSync, client)

        with pytest.raises(TransientNetworkError):
            await adapter.run()
        assert adapter.state == SyncState.FAILED

    async def test_one_campaign_failure_does_not_stop_others(self, engine, make_adapter):
        def activities(campaign_id):
            if campaign_id == "2":
                raise TransientNetworkError("timeout", platform="smartlead")
            return [_lead(int(campaign_id) * 10)]

        client = _client(
            SmartleadClient,
            [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}, {"id": 3, "name": "C"}],
            activities,
        )
        adapter = make_adapter(SmartleadSync, client)
        report = await adapter.run()

        assert report.campaigns_total == 3
        assert report.campaigns_failed == 1
        assert report.inserted == 2
        assert adapter.state == SyncState.DONE
        assert any("campaign 2" in error for error in report.errors)

    async def test_malformed_activity_body_fails_only_that_campaign(self, engine, make_adapter):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/campaigns"):
                return httpx.Response(200, json=[{"id": 1, "name": "A"}, {"id": 2, "name": "B"}])
            if request.url.path.endswith("/campaigns/1/leads"):
                return httpx.Response(200, json="Campaign not found")
            return httpx.Response(200, json={"total_leads": 1, "data": [_lead(5)]})

        client = SmartleadClient(
            "sl-key",
            base_url="https://server.smartlead.ai/api/v1",
            retry_backoff=0,
            transport=httpx.MockTransport(handler),
        )
        adapter = make_adapter(SmartleadSync, client)
        report = await adapter.run()

        assert report.campaigns_failed == 1
        assert report.inserted == 1
        assert adapter.state == SyncState.DONE
        assert any("campaign 1" in error for error in report.errors)

    async def test_unexpected_error_in_one_campaign_is_contained(self, make_adapter):
        def activities(campaign_id):
            if campaign_id == "1":
                raise KeyError("data")
            return [_lead(7)]

        client = _client(SmartleadClient, [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}], activities)
        adapter = make_adapter(SmartleadSync, client)
        report = await adapter.run()

        assert report.campaigns_failed == 1
        assert report.inserted == 1
        assert adapter.state == SyncState.DONE

    async def test_configuration_error_fails_run(self, make_adapter):
        """An unsafe derived table name is fatal, not a per-record failure."""
        resolver = AsyncMock(spec=NamespaceResolver)
        resolver.detect_namespace_from_campaign.return_value = "n" * 60
        client = _client(SmartleadClient, [{"id": 1, "name": "A"}], [_lead(1)])
        adapter = make_adapter(SmartleadSync, client, resolver=resolver)

        with pytest.raises(ConfigurationError):
            await adapter.run()
        assert adapter.state == SyncState.FAILED

    async def test_persistence_error_is_recorded_per_record(self, make_adapter, store):
        client = _client(SmartleadClient, [{"id": 1, "name": "A"}], [_lead(1), _lead(2)])
        adapter = make_adapter(SmartleadSync, client)
        original_insert = store.insert_event
        calls = {"n": 0}

        async def flaky_insert(event):
            calls["n"] += 1
            if calls["n"] == 1:
                raise PersistenceError("deadlock detected")
            return await original_insert(event)

        with patch.object(store, "insert_event", side_effect=flaky_insert):
            report = await adapter.run()

        assert report.failed == 1
        assert report.inserted == 1
        assert any("insert_event" in error for error in report.errors)


# ── Cancellation ───────────────────────────────────────────────────────────


class TestCancellation:
    """cancel_event is honoured between records."""

    async def test_cancel_before_run(self, make_adapter):
        client = _client(SmartleadClient, [{"id": 1, "name": "A"}], [_lead(1)])
        adapter = make_adapter(SmartleadSync, client)
        cancel = asyncio.Event()
        cancel.set()

        report = await adapter.run(cancel_event=cancel)

        assert report.cancelled is True
        assert report.examined == 0
        assert adapter.state == SyncState.DONE

    async def test_cancel_mid_run_stops_between_records(self, make_adapter):
        cancel = asyncio.Event()

        def activities(campaign_id):
            if campaign_id == "2":
                cancel.set()
            return [_lead(int(campaign_id) * 10), _lead(int(campaign_id) * 10 + 1)]

        client = _client(
            SmartleadClient,
            [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}, {"id": 3, "name": "C"}],
            activities,
        )
        report = await make_adapter(SmartleadSync, client).run(cancel_event=cancel)

        assert report.cancelled is True
        assert report.examined == 2
        assert report.inserted == 2
        assert client.list_campaign_activities.await_count == 2


# ── Lemlist Runs ───────────────────────────────────────────────────────────


class TestLemlistSync:
    """Activity mapping and keying for Lemlist."""

    async def test_activity_types_are_mapped(self, engine, make_adapter):
        client = _client(
            LemlistClient,
            [{"_id": "cam_1", "name": "Nebula"}],
            [
                _activity(1, "emailsOpened"),
                _activity(2, "linkedinInviteAccepted"),
                _activity(3, "someBrandNewType"),
            ],
        )
        report = await make_adapter(LemlistSync, client).run()

        assert report.inserted == 3
        async with engine.connect() as conn:
            rows = (
                await conn.execute(select(EventSource.__table__.c.event_type, EventSource.__table__.c.platform))
            ).all()
        assert sorted(rows) == [
            ("email_opened", "lemlist"),
            ("linkedin_invite_accepted", "lemlist"),
            ("some_brand_new_type", "lemlist"),
        ]

    async def test_same_lead_many_events_one_user(self, engine, make_adapter):
        activities = [
            _activity(1, "emailsSent", email="same@example.com"),
            _activity(2, "emailsOpened", email="same@example.com"),
            _activity(3, "emailsClicked", email="SAME@example.com"),
        ]
        client = _client(LemlistClient, [{"_id": "cam_1", "name": "Nebula"}], activities)
        report = await make_adapter(LemlistSync, client).run()

        assert report.inserted == 3
        assert await _count(engine, user_source_table("playmaker_user_source")) == 1
        assert await _count(engine, EventSource.__table__, EventSource.__table__.c.user_identity == "same@example.com") == 3

    async def test_platform_cursors_are_independent(self, make_adapter):
        smartlead = make_adapter(SmartleadSync, _client(SmartleadClient, [{"id": 1, "name": "A"}], [_lead(1)]))
        await smartlead.run()

        lemlist_client = _client(LemlistClient, [{"_id": "cam_1", "name": "N"}], [_activity(1)])
        report = await make_adapter(LemlistSync, lemlist_client).run()
        assert report.cursor is None
        assert report.inserted == 1


class TestEventTypeMapping:
    """map_lemlist_event_type()."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("emailsSent", "email_sent"),
            ("emailsBounced", "email_bounced"),
            ("linkedinVisitDone", "linkedin_profile_visited"),
            ("linkedinVisit", "linkedin_profile_visited"),
            ("meetingBooked", "meeting_booked"),
            ("notInterested", "not_interested"),
            ("hooked", "hooked"),
            ("aircallDone", "aircall_done"),
            (None, "unknown"),
            ("", "unknown"),
        ],
    )
    def test_mapping(self, raw, expected):
        assert map_lemlist_event_type(raw) == expected


# ── Factory ────────────────────────────────────────────────────────────────


class TestFactory:
    """Adapter wiring from settings."""

    async def test_build_smartlead_adapter(self, settings, engine):
        adapter = build_sync_adapter("smartlead", settings, engine)
        assert isinstance(adapter, SmartleadSync)
        assert adapter.state == SyncState.IDLE

    async def test_unknown_platform_rejected(self, settings, engine):
        with pytest.raises(ConfigurationError):
            build_sync_adapter("hubspot", settings, engine)

    async def test_missing_api_key_rejected(self, settings, engine):
        settings.LEMLIST_API_KEY = ""
        with pytest.raises(ConfigurationError):
            build_sync_adapter("lemlist", settings, engine)

    async def test_build_all_shares_collaborators(self, settings, engine):
        adapters = build_sync_adapters(settings, engine)
        assert set(adapters) == {"smartlead", "lemlist"}
        assert adapters["smartlead"]._keys is adapters["lemlist"]._keys
        assert adapters["smartlead"]._resolver is adapters["lemlist"]._resolver
        assert adapters["smartlead"]._tables is adapters["lemlist"]._tables

    async def test_build_all_skips_unconfigured_platforms(self, settings, engine):
        settings.SMARTLEAD_API_KEY = ""
        assert set(build_sync_adapters(settings, engine)) == {"lemlist"}

    async def test_run_platform_sync_runs_adapter(self, settings, engine):
        adapter = AsyncMock(spec=SmartleadSync)
        adapter.run.return_value = SyncReport(platform="smartlead", started_at=BASE_TIME)
        with patch("src.outreach.sync.factory.build_sync_adapter", return_value=adapter) as build:
            report = await run_platform_sync("smartlead", full_sync=True, settings=settings, engine=engine)

        build.assert_called_once_with("smartlead", settings, engine)
        adapter.run.assert_awaited_once_with(full_sync=True, cancel_event=None)
        assert report.platform == "smartlead"
