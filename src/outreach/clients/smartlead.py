"""Smartlead REST client.

GET /campaigns returns a plain list. GET /campaigns/{id}/leads is offset/limit
paginated and answers ``{"total_leads": N, "data": [...]}``; paging stops once
``total_leads`` entries were collected or a short page arrives.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.outreach.clients.base import PlatformClient

logger = structlog.get_logger(__name__)


class SmartleadClient(PlatformClient):
    """Async client for the Smartlead API (``api_key`` query param auth)."""

    platform = "smartlead"

    def _auth_params(self) -> dict[str, str]:
        return {"api_key": self._api_key}

    async def list_campaigns(self) -> list[dict[str, Any]]:
        data = await self._get("/campaigns")
        if data is not None and not isinstance(data, (list, dict)):
            raise self._unexpected_body("/campaigns", data)
        campaigns = data if isinstance(data, list) else (data or {}).get("data") or []
        logger.info("smartlead.campaigns_fetched", count=len(campaigns))
        return campaigns

    async def list_campaign_activities(self, campaign_id: str) -> list[dict[str, Any]]:
        """All leads of a campaign, one entry per campaign-lead mapping."""
        leads: list[dict[str, Any]] = []
        offset = 0
        for _ in range(self.max_pages):
            path = f"/campaigns/{campaign_id}/leads"
            body = await self._get(path, params={"offset": offset, "limit": self.page_size})
            if body is not None and not isinstance(body, (list, dict)):
                raise self._unexpected_body(path, body)
            if isinstance(body, list):
                chunk, total = body, None
            else:
                body = body or {}
                chunk = body.get("data") or []
                total = body.get("total_leads")

            leads.extend(chunk)
            offset += len(chunk)

            if not chunk or len(chunk) < self.page_size:
                break
            if total is not None and len(leads) >= int(total):
                break
        else:
            logger.warning(
                "smartlead.page_cap_reached",
                campaign_id=campaign_id,
                max_pages=self.max_pages,
                fetched=len(leads),
            )

        logger.info("smartlead.leads_fetched", campaign_id=campaign_id, count=len(leads))
        return leads
