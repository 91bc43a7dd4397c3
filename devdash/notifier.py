"""
Status-change notifications.

Each status change is published once on ``source_status:<id>`` and once on
``source_status:all``. Subscribers are in-process callbacks; a webhook can be
configured to receive every change as JSON.
"""

import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

from devdash.config import settings
from devdash.utils.logging import get_logger

logger = get_logger(__name__)

ALL_SOURCES_CHANNEL = "source_status:all"


def source_channel(source_id: str) -> str:
    return f"source_status:{source_id}"


@dataclass(frozen=True)
class StatusEvent:
    channel: str
    source_id: str
    new_status: str


Subscriber = Callable[[StatusEvent], Awaitable[None] | None]


class StatusNotifier:
    def __init__(self, webhook_url: str | None = None):
        self.webhook_url = settings.status_webhook_url if webhook_url is None else webhook_url
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def subscribe(self, channel: str, callback: Subscriber) -> None:
        self._subscribers[channel].append(callback)

    def unsubscribe(self, channel: str, callback: Subscriber) -> None:
        if callback in self._subscribers.get(channel, []):
            self._subscribers[channel].remove(callback)

    async def _deliver(self, event: StatusEvent) -> None:
        for callback in list(self._subscribers.get(event.channel, [])):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning("status_subscriber_failed", channel=event.channel, error=str(exc))

    async def _send_webhook(self, source_id: str, new_status: str) -> bool:
        if not self.webhook_url:
            return False

        payload = {"source_id": source_id, "new_status": new_status}
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self.webhook_url, json=payload)
                if response.status_code in (200, 201, 202, 204):
                    return True
                logger.warning("status_webhook_failed", status_code=response.status_code,
                               body=response.text[:200])
                return False
        except Exception as exc:
            logger.warning("status_webhook_exception", error=str(exc))
            return False

    async def publish(self, source_id: str, new_status: str) -> None:
        """
        Emit one event per channel for a status change.

        Never raises; subscriber and webhook failures are logged.
        """
        for channel in (source_channel(source_id), ALL_SOURCES_CHANNEL):
            await self._deliver(StatusEvent(channel=channel, source_id=source_id, new_status=new_status))
        await self._send_webhook(source_id, new_status)
        logger.debug("status_published", source_id=source_id, new_status=new_status)


_notifier: StatusNotifier | None = None


def get_notifier() -> StatusNotifier:
    global _notifier
    if _notifier is None:
        _notifier = StatusNotifier()
    return _notifier
