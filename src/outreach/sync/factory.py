"""Adapter wiring -- builds sync adapters from settings.

The key generator, resolver, table manager and store are shared between the
adapters returned by build_sync_adapters(), so namespace snapshots, key
stats and provisioned-table memos are per process rather than per platform.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from src.outreach.clients.base import PlatformClient
from src.outreach.clients.lemlist import LemlistClient
from src.outreach.clients.smartlead import SmartleadClient
from src.outreach.config import Settings, get_settings
from src.outreach.core.database import get_engine
from src.outreach.core.exceptions import ConfigurationError
from src.outreach.dedup.event_keys import EventKeyGenerator
from src.outreach.namespaces.repository import NamespaceRepository
from src.outreach.namespaces.resolver import NamespaceResolver
from src.outreach.namespaces.tables import TableManager
from src.outreach.schemas import Platform, SyncReport
from src.outreach.sync.base import PlatformSyncAdapter
from src.outreach.sync.lemlist import LemlistSync
from src.outreach.sync.smartlead import SmartleadSync
from src.outreach.sync.store import SyncStore

logger = structlog.get_logger(__name__)

_ADAPTERS: dict[str, tuple[type[PlatformClient], type[PlatformSyncAdapter]]] = {
    Platform.SMARTLEAD.value: (SmartleadClient, SmartleadSync),
    Platform.LEMLIST.value: (LemlistClient, LemlistSync),
}


def _base_url(platform: str, settings: Settings) -> str:
    if platform == Platform.SMARTLEAD.value:
        return settings.SMARTLEAD_BASE_URL
    return settings.LEMLIST_BASE_URL


def build_sync_adapter(
    platform: str,
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    *,
    client: PlatformClient | None = None,
    store: SyncStore | None = None,
    key_generator: EventKeyGenerator | None = None,
    resolver: NamespaceResolver | None = None,
    table_manager: TableManager | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PlatformSyncAdapter:
    """Compose one platform adapter.

    Any collaborator not passed in is built from ``settings`` and ``engine``.

    Raises:
        ConfigurationError: Unknown platform, or no API key when a client
            has to be built.
    """
    if platform not in _ADAPTERS:
        raise ConfigurationError(f"Unknown platform '{platform}'")
    settings = settings or get_settings()
    engine = engine or get_engine()
    client_cls, adapter_cls = _ADAPTERS[platform]

    if client is None:
        client = client_cls(
            settings.api_key_for(platform),
            base_url=_base_url(platform, settings),
            timeout=settings.HTTP_TIMEOUT,
            max_attempts=settings.HTTP_MAX_RETRIES,
            page_size=settings.PLATFORM_PAGE_SIZE,
            transport=transport,
        )

    return adapter_cls(
        client,
        store=store or SyncStore(engine),
        key_generator=key_generator or EventKeyGenerator(settings.EVENT_KEY_CACHE_SIZE),
        resolver=resolver
        or NamespaceResolver(
            NamespaceRepository(engine),
            default_namespace=settings.DEFAULT_NAMESPACE,
            cache_ttl=settings.NAMESPACE_CACHE_TTL_SECONDS,
        ),
        table_manager=table_manager or TableManager(engine),
        cursor_lookback=timedelta(minutes=settings.SYNC_CURSOR_LOOKBACK_MINUTES),
    )


def build_sync_adapters(
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, PlatformSyncAdapter]:
    """Adapters for every platform with a configured API key, sharing collaborators."""
    settings = settings or get_settings()
    engine = engine or get_engine()

    shared = {
        "store": SyncStore(engine),
        "key_generator": EventKeyGenerator(settings.EVENT_KEY_CACHE_SIZE),
        "resolver": NamespaceResolver(
            NamespaceRepository(engine),
            default_namespace=settings.DEFAULT_NAMESPACE,
            cache_ttl=settings.NAMESPACE_CACHE_TTL_SECONDS,
        ),
        "table_manager": TableManager(engine),
    }

    adapters: dict[str, PlatformSyncAdapter] = {}
    for platform in _ADAPTERS:
        try:
            settings.api_key_for(platform)
        except ConfigurationError:
            logger.info("sync_factory.platform_not_configured", platform=platform)
            continue
        adapters[platform] = build_sync_adapter(platform, settings, engine, transport=transport, **shared)
    return adapters


async def run_platform_sync(
    platform: str,
    *,
    full_sync: bool = False,
    cancel_event: asyncio.Event | None = None,
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
) -> SyncReport:
    """Entry point for schedulers: build the platform's adapter and run it once."""
    adapter = build_sync_adapter(platform, settings, engine)
    return await adapter.run(full_sync=full_sync, cancel_event=cancel_event)
