"""Deterministic event keys for cross-run deduplication.

Provides:
- EventKeyGenerator: Builds and validates keys, tracks repeat/collision stats
- smartlead_descriptor() / lemlist_descriptor(): EventDescriptor from raw payloads

Key format::

    {platform}_{campaign}_{event_type}_{unique_id}_{digest}

Readable components are lowercased, stripped to [a-z0-9] and cut to 50
chars. ``digest`` is the first 16 hex chars of SHA-256 over the canonical
JSON of the raw identity fields, so two activities whose readable parts
clean to the same text still get distinct keys. Nothing time- or
process-dependent enters the key: the same activity always yields the same
key, which is what lets the event_source unique constraint absorb re-runs.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections import OrderedDict
from typing import Any

import structlog

from src.outreach.core.exceptions import ValidationError
from src.outreach.core.timestamps import parse_timestamp
from src.outreach.schemas import SUPPORTED_PLATFORMS, EventDescriptor

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NON_ALNUM = re.compile(r"[^a-z0-9]")

COMPONENT_MAX_LENGTH = 50
DIGEST_LENGTH = 16
DEFAULT_CACHE_CAPACITY = 10_000


def _clean_component(value: Any) -> str:
    cleaned = _NON_ALNUM.sub("", str(value).lower())[:COMPONENT_MAX_LENGTH]
    return cleaned or "x"


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class EventKeyGenerator:
    """Builds stable, collision-resistant event keys.

    The LRU cache maps each recently generated key to a fingerprint of the
    descriptor that produced it. Seeing a key again for the same fingerprint
    counts as a repeat (a re-run or an overlapping page); seeing it for a
    different fingerprint counts as a collision and is logged. The cache is
    instrumentation only: deduplication itself is enforced by the database.

    Args:
        cache_capacity: Maximum number of keys tracked before the least
            recently used entry is evicted.
    """

    def __init__(self, cache_capacity: int = DEFAULT_CACHE_CAPACITY) -> None:
        if cache_capacity < 1:
            raise ValueError("cache_capacity must be positive")
        self._capacity = cache_capacity
        self._cache: OrderedDict[str, str] = OrderedDict()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._total_generated = 0
        self._repeats = 0
        self._collisions = 0
        self._fallback_used = 0
        self._invalid_inputs = 0

    # ── Validation ──────────────────────────────────────────────────────────

    def _check(self, descriptor: EventDescriptor) -> list[str]:
        errors: list[str] = []

        platform = (descriptor.platform or "").strip().lower()
        if not platform:
            errors.append("platform is required")
        elif platform not in SUPPORTED_PLATFORMS:
            errors.append(f"unsupported platform '{descriptor.platform}'")

        if _is_blank(descriptor.campaign_id):
            errors.append("campaign_id is required")
        if _is_blank(descriptor.event_type):
            errors.append("event_type is required")

        if _is_blank(descriptor.email):
            errors.append("email is required")
        elif not EMAIL_PATTERN.match(descriptor.email.strip()):
            errors.append(f"malformed email '{descriptor.email}'")

        if _is_blank(descriptor.timestamp):
            if _is_blank(descriptor.activity_id):
                errors.append("activity_id or timestamp is required")
        else:
            try:
                parse_timestamp(descriptor.timestamp)
            except (ValueError, TypeError, OverflowError, OSError):
                errors.append(f"unparsable timestamp '{descriptor.timestamp}'")

        return errors

    def validate(self, descriptor: EventDescriptor) -> None:
        """Run the key-generation checks without producing a key.

        Raises:
            ValidationError: Listing every problem with the descriptor.
        """
        errors = self._check(descriptor)
        if errors:
            self._invalid_inputs += 1
            raise ValidationError(errors)

    # ── Generation ──────────────────────────────────────────────────────────

    def generate_event_key(self, descriptor: EventDescriptor) -> str:
        """Build the event key for one activity.

        Uses ``activity_id`` as the unique part when present. Otherwise falls
        back to ``email`` + ``timestamp``, which is counted in the stats.

        Raises:
            ValidationError: If the descriptor is missing or has malformed fields.
        """
        self.validate(descriptor)

        platform = descriptor.platform.strip().lower()
        email = descriptor.email.strip().lower()
        timestamp = parse_timestamp(descriptor.timestamp)
        timestamp_iso = timestamp.isoformat() if timestamp else None

        identity: dict[str, Any] = {
            "platform": platform,
            "campaign_id": str(descriptor.campaign_id).strip(),
            "event_type": str(descriptor.event_type).strip(),
        }
        if not _is_blank(descriptor.activity_id):
            activity_id = str(descriptor.activity_id).strip()
            identity["activity_id"] = activity_id
            unique_part = _clean_component(activity_id)
        else:
            identity["email"] = email
            identity["timestamp"] = timestamp_iso
            unique_part = _clean_component(email)
            self._fallback_used += 1

        canonical = json.dumps(identity, sort_keys=True, separators=(",", ":"))
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]

        key = "_".join(
            (
                _clean_component(platform),
                _clean_component(identity["campaign_id"]),
                _clean_component(identity["event_type"]),
                unique_part,
                digest,
            )
        )

        fingerprint = json.dumps(
            {**identity, "email": email, "timestamp": timestamp_iso},
            sort_keys=True,
            separators=(",", ":"),
        )
        self._track(key, fingerprint)
        return key

    def _track(self, key: str, fingerprint: str) -> None:
        self._total_generated += 1
        seen = self._cache.get(key)
        if seen is not None:
            self._cache.move_to_end(key)
            if seen == fingerprint:
                self._repeats += 1
            else:
                self._collisions += 1
                logger.warning(
                    "event_keys.collision_detected",
                    event_key=key,
                    previous=seen,
                    current=fingerprint,
                )
            return

        self._cache[key] = fingerprint
        if len(self._cache) > self._capacity:
            self._cache.popitem(last=False)

    # ── Stats ───────────────────────────────────────────────────────────────

    def get_stats(self) -> dict[str, Any]:
        """Counters since construction or the last clear_cache()."""
        total = self._total_generated
        return {
            "total_generated": total,
            "repeats": self._repeats,
            "collisions_detected": self._collisions,
            "fallback_used": self._fallback_used,
            "invalid_inputs": self._invalid_inputs,
            "cache_size": len(self._cache),
            "cache_capacity": self._capacity,
            "collision_rate": (self._collisions / total) if total else 0.0,
        }

    def clear_cache(self) -> None:
        """Drop cached keys and reset every counter."""
        self._cache.clear()
        self._reset_counters()


# ── Platform descriptor helpers ─────────────────────────────────────────────


def smartlead_descriptor(campaign_id: Any, item: dict[str, Any]) -> EventDescriptor:
    """Descriptor for one Smartlead campaign lead.

    Lead entries arrive either wrapped (``{"campaign_lead_map_id", "lead": {...}}``)
    or flat; the lead id is preferred over the lead-map id.
    """
    lead = item.get("lead") or item
    activity_id = lead.get("id")
    if _is_blank(activity_id):
        activity_id = item.get("campaign_lead_map_id")
    return EventDescriptor(
        platform="smartlead",
        campaign_id=campaign_id,
        event_type="lead_created",
        email=lead.get("email"),
        activity_id=activity_id,
        timestamp=item.get("created_at") or lead.get("created_at"),
    )


def lemlist_descriptor(campaign_id: Any, activity: dict[str, Any], event_type: str) -> EventDescriptor:
    """Descriptor for one Lemlist activity.

    Args:
        campaign_id: Campaign the activity was fetched for.
        activity: Raw activity payload.
        event_type: Already-mapped event type (see map_lemlist_event_type).
    """
    lead = activity.get("lead") or {}
    return EventDescriptor(
        platform="lemlist",
        campaign_id=campaign_id,
        event_type=event_type,
        email=lead.get("email") or activity.get("leadEmail"),
        activity_id=activity.get("_id") or activity.get("id"),
        timestamp=activity.get("date") or activity.get("createdAt"),
    )
