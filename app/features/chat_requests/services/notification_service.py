"""
Best-effort push of chat events to the external notification channel.

The academy's send-notification function forwards a short human-readable
summary to SMS/WhatsApp. Delivery is fire-and-forget: failures are logged
and swallowed, never surfaced to the lifecycle or feed operations.
"""

import asyncio
from typing import Any

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class NotificationDeliveryService:
    """Posts notification summaries to NOTIFICATION_WEBHOOK_URL."""

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.NOTIFICATION_WEBHOOK_URL
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self._transport = transport
        self._pending: set[asyncio.Task] = set()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if settings.SUPABASE_SERVICE_ROLE_KEY:
            headers["Authorization"] = f"Bearer {settings.SUPABASE_SERVICE_ROLE_KEY}"
        return headers

    async def push(self, *, user_id: str, title: str, message: str, kind: str) -> bool:
        """
        Deliver one notification summary.

        Returns:
            bool: True if the channel accepted it. Never raises.
        """
        payload: dict[str, Any] = {
            "user_id": user_id,
            "title": title,
            "message": message,
            "type": kind,
        }

        if not self.webhook_url:
            logger.info("Notification push skipped, no webhook configured", kind=kind, user_id=user_id)
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=payload, headers=self._headers())

            if response.status_code >= 400:
                logger.warning(
                    "Notification push rejected",
                    kind=kind,
                    user_id=user_id,
                    status_code=response.status_code,
                )
                return False

            logger.debug("Notification pushed", kind=kind, user_id=user_id)
            return True

        except httpx.HTTPError as e:
            logger.warning(
                "Notification push failed",
                kind=kind,
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    def dispatch(self, *, user_id: str, title: str, message: str, kind: str) -> None:
        """Schedule a push without waiting for it."""
        task = asyncio.create_task(self.push(user_id=user_id, title=title, message=message, kind=kind))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for scheduled pushes; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
