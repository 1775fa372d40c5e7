"""
Notification delivery backends.

The fan-out hands each batch of events to one backend. Backends may
raise; the fan-out logs and swallows delivery failures.
"""

import logging
from typing import List, Optional, Protocol, Sequence

import aiohttp
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import settings
from ..database.repositories import NotificationRepository, get_notification_repository
from ..models.notification import NotificationEvent

logger = logging.getLogger(__name__)


class NotificationDelivery(Protocol):
    """Accepts a batch of notification events."""

    async def deliver(self, events: Sequence[NotificationEvent]) -> None:
        ...


class DatabaseNotificationDelivery:
    """Stores notifications as rows for in-app polling."""

    def __init__(self, repository: Optional[NotificationRepository] = None):
        self.repository = repository or get_notification_repository()

    async def deliver(self, events: Sequence[NotificationEvent]) -> None:
        count = await self.repository.insert_many(list(events))
        logger.debug(f"Stored {count} notification(s)")


class WebhookDeliveryError(Exception):
    """Webhook answered with a non-2xx status."""
    pass


class WebhookNotificationDelivery:
    """POSTs each batch as JSON to a webhook, retrying transient failures."""

    def __init__(self, url: str, timeout: float = 10.0):
        if not url:
            raise ValueError("Webhook delivery needs NOTIFICATION_WEBHOOK_URL")
        self.url = url
        self.timeout = timeout

    def _payload(self, events: Sequence[NotificationEvent]) -> dict:
        return {"notifications": [event.model_dump(mode="json") for event in events]}

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((aiohttp.ClientError, WebhookDeliveryError)),
        reraise=True,
    )
    async def _post(self, payload: dict) -> None:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.url, json=payload) as response:
                if response.status >= 300:
                    raise WebhookDeliveryError(f"Notification webhook returned {response.status}")

    async def deliver(self, events: Sequence[NotificationEvent]) -> None:
        if not events:
            return
        await self._post(self._payload(events))
        logger.debug(f"Posted {len(events)} notification(s) to webhook")


class NullNotificationDelivery:
    """Discards notifications. Keeps what it was given for inspection."""

    def __init__(self):
        self.delivered: List[NotificationEvent] = []

    async def deliver(self, events: Sequence[NotificationEvent]) -> None:
        self.delivered.extend(events)


def get_notification_delivery(backend: Optional[str] = None) -> NotificationDelivery:
    """Build the delivery backend named by ``backend`` or NOTIFICATION_BACKEND."""
    backend = (backend or settings.notification_backend or "database").lower()

    if backend == "database":
        return DatabaseNotificationDelivery()
    if backend == "webhook":
        return WebhookNotificationDelivery(
            settings.notification_webhook_url,
            timeout=settings.notification_webhook_timeout,
        )
    if backend in ("none", "null"):
        return NullNotificationDelivery()

    raise ValueError(f"Unknown notification backend: {backend}")
