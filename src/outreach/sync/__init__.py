"""Delta sync -- incremental, idempotent ingestion of platform activity.

Provides abstract PlatformSyncAdapter with concrete implementations:
- SmartleadSync: Campaign leads as ``lead_created`` events
- LemlistSync: Campaign activities with mapped event types
- SyncStore: Cursor reads, COALESCE user upserts, ON CONFLICT event inserts

Wiring lives in src.outreach.sync.factory (build_sync_adapter,
build_sync_adapters, run_platform_sync).
"""

from src.outreach.sync.base import PlatformSyncAdapter
from src.outreach.sync.event_types import map_lemlist_event_type
from src.outreach.sync.lemlist import LemlistSync
from src.outreach.sync.smartlead import SmartleadSync
from src.outreach.sync.store import SyncStore

__all__ = [
    "PlatformSyncAdapter",
    "SmartleadSync",
    "LemlistSync",
    "SyncStore",
    "map_lemlist_event_type",
]
