from __future__ import annotations

import logging

import httpx

from catalyst_monitor.errors import NotificationError

log = logging.getLogger(__name__)

BOT_USERNAME = "Catalyst Monitor Bot"
_MAX_CONTENT = 2000  # Discord message limit


class Notifier:
    """Best-effort Discord webhook poster; never raises to the caller."""

    def __init__(
        self,
        webhook_url: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport

    async def _post(self, message: str) -> None:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout), transport=self._transport) as client:
                resp = await client.post(
                    self.webhook_url,
                    json={"content": message[:_MAX_CONTENT], "username": BOT_USERNAME},
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Webhook post failed: {exc}") from exc

    async def send(self, message: str) -> bool:
        """Post *message*; returns True when delivered."""
        if not self.webhook_url:
            log.info("Discord webhook URL not provided. Skipping notification.")
            return False
        try:
            await self._post(message)
        except NotificationError as exc:
            log.error("Error sending Discord notification: %s", exc)
            return False
        log.info("Discord notification sent")
        return True
