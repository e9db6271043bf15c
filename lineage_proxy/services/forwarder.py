"""Optional forwarding of committed events to a webhook."""
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from ..identifiers import filename_for

log = structlog.get_logger()


class WebhookForwarder:
    """
    Posts each committed event to an external URL.

    Forwarding happens after the event is durable, so a failing webhook is
    logged and otherwise ignored; it never turns a stored event into an error.
    """

    def __init__(self, url: str, token: str = "", client: httpx.AsyncClient | None = None, timeout: float = 5.0):
        self.url = url
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def forward(self, identifier: str, payload: Any) -> bool:
        """
        Send one event.

        Returns:
            True if the webhook accepted it
        """
        body = {
            "filename": filename_for(identifier),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": payload,
        }
        try:
            response = await self._client.post(self.url, json=body, headers=self._headers)
        except httpx.HTTPError as e:
            log.warning("webhook.error", identifier=identifier, error=str(e))
            return False
        if not response.is_success:
            log.warning("webhook.failed", identifier=identifier, status_code=response.status_code)
            return False
        log.debug("webhook.forwarded", identifier=identifier)
        return True

    async def close(self) -> None:
        await self._client.aclose()
