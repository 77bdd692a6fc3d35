"""Campaign name -> namespace routing.

A campaign belongs to the first active namespace (in priority order) with a
keyword contained in the campaign name, compared case-insensitively.
Campaigns matching nothing go to the default namespace.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from src.outreach.core.exceptions import PersistenceError
from src.outreach.namespaces.repository import NamespaceRepository
from src.outreach.schemas import NamespaceRead

logger = structlog.get_logger(__name__)

# Keyword marking a namespace as the catch-all; never used for substring matching
DEFAULT_KEYWORD = "default"


class NamespaceResolver:
    """Resolves campaign names to namespace names.

    The active-namespace snapshot is cached for ``cache_ttl`` seconds. When a
    refresh fails the previous snapshot keeps serving (and the failure is
    logged); with no snapshot at all the failure propagates.

    Args:
        repository: Source of active namespaces.
        default_namespace: Fallback name when no namespace carries the
            ``default`` keyword.
        cache_ttl: Snapshot lifetime in seconds.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        repository: NamespaceRepository,
        *,
        default_namespace: str = "playmaker",
        cache_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repository = repository
        self._default_namespace = default_namespace
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._snapshot: list[NamespaceRead] | None = None
        self._loaded_at = 0.0

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next lookup reloads."""
        self._snapshot = None
        self._loaded_at = 0.0

    async def _namespaces(self) -> list[NamespaceRead]:
        now = self._clock()
        if self._snapshot is not None and now - self._loaded_at < self._cache_ttl:
            return self._snapshot

        try:
            namespaces = await self._repository.list_active()
        except PersistenceError as exc:
            if self._snapshot is None:
                raise
            logger.warning(
                "namespaces.refresh_failed_using_stale",
                error=str(exc),
                cached_count=len(self._snapshot),
            )
            return self._snapshot

        self._snapshot = namespaces
        self._loaded_at = now
        logger.debug("namespaces.loaded", count=len(namespaces))
        return namespaces

    async def get_default_namespace(self) -> str:
        """Name of the namespace carrying the ``default`` keyword, else the configured fallback."""
        for namespace in await self._namespaces():
            if DEFAULT_KEYWORD in namespace.keywords:
                return namespace.name
        return self._default_namespace

    async def detect_namespace_from_campaign(self, campaign_name: str | None) -> str:
        """Return the namespace name for a campaign.

        Raises:
            PersistenceError: If namespaces have never been loaded and loading fails.
        """
        if not campaign_name or not campaign_name.strip():
            return await self.get_default_namespace()

        haystack = campaign_name.casefold()
        for namespace in await self._namespaces():
            if DEFAULT_KEYWORD in namespace.keywords:
                continue
            for keyword in namespace.keywords:
                if keyword in haystack:
                    logger.debug(
                        "namespaces.matched",
                        campaign=campaign_name,
                        namespace=namespace.name,
                        keyword=keyword,
                    )
                    return namespace.name

        default = await self.get_default_namespace()
        logger.debug("namespaces.fallback_default", campaign=campaign_name, namespace=default)
        return default
