"""Shared HTTP plumbing for platform REST clients.

Provides PlatformClient with httpx.AsyncClient and tenacity retries
(exponential backoff, 3 attempts by default) on connect errors, timeouts,
HTTP 429 and 5xx. Failures are translated into the pipeline's error
taxonomy:

- 401/403 -> ConfigurationError (bad or revoked API key; retrying won't help)
- anything else that still fails after retries -> TransientNetworkError
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.outreach.core.exceptions import ConfigurationError, TransientNetworkError

logger = structlog.get_logger(__name__)

AUTH_FAILURE_STATUSES = frozenset({401, 403})


def _is_retryable(exc: BaseException) -> bool:
    """Connect errors, timeouts and other transport failures, 429 and 5xx."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class PlatformClient(ABC):
    """Base for Smartlead / Lemlist REST clients.

    Subclasses supply the platform name and the query parameters that carry
    the API key; this class owns transport, retries and error translation.

    Args:
        api_key: Platform API key.
        base_url: API root, e.g. ``https://server.smartlead.ai/api/v1``.
        timeout: Per-request timeout in seconds.
        max_attempts: Total attempts per request, including the first.
        retry_backoff: Exponential backoff multiplier in seconds (0 disables waiting).
        retry_max_wait: Upper bound for a single backoff wait.
        page_size: Page size for offset/limit pagination.
        max_pages: Hard cap on pages fetched per listing.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    platform: str = ""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_backoff: float = 1.0,
        retry_max_wait: float = 10.0,
        page_size: int = 100,
        max_pages: int = 1000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError(f"{self.platform} API key is not configured")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff = retry_backoff
        self._retry_max_wait = retry_max_wait
        self.page_size = page_size
        self.max_pages = max_pages
        self._transport = transport

    @abstractmethod
    def _auth_params(self) -> dict[str, str]:
        """Query parameters that authenticate a request."""
        ...

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client for one request."""
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "platform_client.retrying",
            platform=self.platform,
            attempt=retry_state.attempt_number,
            max_attempts=self._max_attempts,
            error=str(exc),
        )

    def _unexpected_body(self, path: str, body: Any) -> TransientNetworkError:
        """Error for a 2xx response whose JSON is not the expected shape."""
        logger.error(
            "platform_client.unexpected_body",
            platform=self.platform,
            path=path,
            body_type=type(body).__name__,
        )
        return TransientNetworkError(
            f"{self.platform} GET {path} returned an unexpected {type(body).__name__} body",
            platform=self.platform,
        )

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``path`` with retries and return the decoded JSON body.

        Raises:
            ConfigurationError: On 401/403.
            TransientNetworkError: When the request still fails after retries.
        """
        query = {**self._auth_params(), **(params or {})}
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._retry_backoff,
                min=self._retry_backoff,
                max=self._retry_max_wait,
            ),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    async with self._client() as client:
                        response = await client.get(path, params=query)
                    if response.status_code in AUTH_FAILURE_STATUSES:
                        raise ConfigurationError(
                            f"{self.platform} rejected the API key (HTTP {response.status_code})"
                        )
                    response.raise_for_status()
                    return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("platform_client.http_error", platform=self.platform, path=path, status=status)
            raise TransientNetworkError(
                f"{self.platform} GET {path} failed with HTTP {status}",
                platform=self.platform,
                status_code=status,
            ) from exc
        except httpx.TransportError as exc:
            logger.error("platform_client.transport_error", platform=self.platform, path=path, error=str(exc))
            raise TransientNetworkError(
                f"{self.platform} GET {path} failed: {exc}",
                platform=self.platform,
            ) from exc
        except ValueError as exc:
            raise TransientNetworkError(
                f"{self.platform} GET {path} returned invalid JSON",
                platform=self.platform,
            ) from exc

    # ── Listings ────────────────────────────────────────────────────────────

    @abstractmethod
    async def list_campaigns(self) -> list[dict[str, Any]]:
        """Every campaign visible to the API key (raw payloads)."""
        ...

    @abstractmethod
    async def list_campaign_activities(self, campaign_id: str) -> list[dict[str, Any]]:
        """Every activity (or lead) of one campaign (raw payloads)."""
        ...
