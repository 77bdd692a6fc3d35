"""Error taxonomy for the sync pipeline.

- ConfigurationError: missing/invalid API key or an unsafe table identifier.
  Fatal for the operation and surfaced to the caller of a run.
- TransientNetworkError: a platform API call failed after retries. Ends the
  current campaign (activity fetch) or the whole run (campaign fetch).
- ValidationError: a malformed event descriptor. Recovered per record.
- PersistenceError: a database failure other than the expected event_key
  conflict. Recovered per record.
"""

from __future__ import annotations


class OutreachSyncError(Exception):
    """Base class for every error raised by the sync pipeline."""


class ConfigurationError(OutreachSyncError):
    """Raised when configuration or a derived identifier is unusable."""


class TransientNetworkError(OutreachSyncError):
    """Raised when a platform API call fails after the retry budget.

    Attributes:
        platform: Platform whose API failed.
        status_code: HTTP status code when the server answered, else None.
    """

    def __init__(self, message: str, *, platform: str | None = None, status_code: int | None = None) -> None:
        self.platform = platform
        self.status_code = status_code
        super().__init__(message)


class ValidationError(OutreachSyncError):
    """Raised when an event descriptor cannot produce a stable key.

    Attributes:
        errors: Every problem found, not just the first one.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors) if errors else "invalid event descriptor")


class PersistenceError(OutreachSyncError):
    """Raised when a database write or read fails unexpectedly."""
