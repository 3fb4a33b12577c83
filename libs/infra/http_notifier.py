"""Fire station notification over the society backend REST API."""

from __future__ import annotations

import logging

import httpx

from libs.core.application.contracts import IncidentContext
from libs.core.application.errors import AlertDeliveryError

logger = logging.getLogger(__name__)

TRIGGER_FIRE_PATH = "/api/society/trigger-fire"
DEFAULT_TIMEOUT_SEC = 15.0


class HttpAlertNotifier:
    """Posts the auto-detected fire trigger to the backend."""

    def __init__(
        self,
        api_base: str,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        self._url = api_base.rstrip("/") + TRIGGER_FIRE_PATH
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def notify(self, context: IncidentContext) -> None:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        payload = {
            "autoDetected": context["auto_detected"],
            "incidentId": context["incident_id"],
            "confidence": round(context["confidence"], 4),
            "detectedAt": context["detected_at"],
            "source": context["source_name"],
        }

        try:
            response = await self._client.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as error:
            raise AlertDeliveryError(
                f"backend rejected alert: HTTP {error.response.status_code}"
            ) from error
        except httpx.HTTPError as error:
            raise AlertDeliveryError(f"backend unreachable: {error}") from error
        except httpx.InvalidURL as error:
            raise AlertDeliveryError(f"invalid backend URL: {error}") from error

        logger.debug("Backend accepted alert: %s", response.text)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
