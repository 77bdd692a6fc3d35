"""Event deduplication -- deterministic keys for idempotent ingestion.

The key generator only guarantees that the same activity maps to the same
key. Duplicate suppression happens in the database through the unique
constraint on event_source.event_key.
"""

from src.outreach.dedup.event_keys import (
    EventKeyGenerator,
    lemlist_descriptor,
    smartlead_descriptor,
)

__all__ = [
    "EventKeyGenerator",
    "smartlead_descriptor",
    "lemlist_descriptor",
]
