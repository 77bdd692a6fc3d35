"""Lemlist REST client.

GET /campaigns returns a plain list. Activities come from
GET /activities?campaignId=..., offset/limit paginated until an empty or
short page.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.outreach.clients.base import PlatformClient

logger = structlog.get_logger(__name__)


class LemlistClient(PlatformClient):
    """Async client for the Lemlist API (``access_token`` query param auth)."""

    platform = "lemlist"

    def _auth_params(self) -> dict[str, str]:
        return {"access_token": self._api_key}

    async def list_campaigns(self) -> list[dict[str, Any]]:
        data = await self._get("/campaigns")
        campaigns = data if isinstance(data, list) else []
        logger.info("lemlist.campaigns_fetched", count=len(campaigns))
        return campaigns

    async def list_campaign_activities(self, campaign_id: str) -> list[dict[str, Any]]:
        activities: list[dict[str, Any]] = []
        offset = 0
        for _ in range(self.max_pages):
            chunk = await self._get(
                "/activities",
                params={"campaignId": campaign_id, "limit": self.page_size, "offset": offset},
            )
            if not isinstance(chunk, list) or not chunk:
                break
            activities.extend(chunk)
            offset += len(chunk)
            if len(chunk) < self.page_size:
                break
        else:
            logger.warning(
                "lemlist.page_cap_reached",
                campaign_id=campaign_id,
                max_pages=self.max_pages,
                fetched=len(activities),
            )

        logger.info("lemlist.activities_fetched", campaign_id=campaign_id, count=len(activities))
        return activities
