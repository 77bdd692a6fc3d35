"""Timestamp normalisation for platform payloads and database values."""

from __future__ import annotations

from datetime import datetime, timezone


def parse_timestamp(value: object) -> datetime | None:
    """Parse an API timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (including a trailing ``Z``) and
    epoch numbers. Numbers above 10^11 are treated as milliseconds.
    Naive values are assumed to be UTC.

    Returns:
        Aware datetime in UTC, or None for empty or whitespace-only input.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            return parse_timestamp(int(text))
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    raise ValueError(f"Not a timestamp: {value!r}")


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC.

    SQLite hands back naive datetimes for timezone-aware columns, so values
    read from the store pass through here before comparison.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp_or_none(value: object) -> datetime | None:
    """Like parse_timestamp(), but unusable values become None instead of raising."""
    try:
        return parse_timestamp(value)
    except (ValueError, TypeError, OverflowError, OSError):
        return None
