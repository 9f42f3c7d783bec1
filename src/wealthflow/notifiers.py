"""Notification channels used by automations and deadline reminders."""

import asyncio
from typing import Any, Protocol

import httpx
import structlog

from wealthflow.config import get_settings
from wealthflow.errors import NotificationDeliveryError
from wealthflow.events.publisher import EventPublisher
from wealthflow.events.types import notification_sent

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    """Surfaces a message to the user through whatever channel is available."""

    async def notify(self, title: str, body: str, tag: str | None = None) -> None: ...


class LogNotifier:
    """Writes notifications to the structured log. Used when nothing else is set up."""

    def __init__(self) -> None:
        self._logger = logger.bind(component="log_notifier")

    async def notify(self, title: str, body: str, tag: str | None = None) -> None:
        self._logger.info("notification", title=title, body=body, tag=tag)


class EventNotifier:
    """Publishes notifications on the event stream for in-app toasts."""

    def __init__(self, publisher: EventPublisher):
        self._publisher = publisher

    async def notify(self, title: str, body: str, tag: str | None = None) -> None:
        self._publisher.publish(notification_sent(title, body, tag))


class WebhookNotifier:
    """POSTs notifications as JSON to a webhook (push relay, chat channel, ...)."""

    def __init__(self, url: str | None = None, timeout: float | None = None):
        settings = get_settings()
        url = url or settings.notify_webhook_url
        if not url:
            raise ValueError("WebhookNotifier needs a URL (set NOTIFY_WEBHOOK_URL)")
        self.url = url
        self._timeout = timeout or settings.notify_webhook_timeout
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="webhook_notifier")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "WebhookNotifier":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def notify(self, title: str, body: str, tag: str | None = None) -> None:
        payload = {"title": title, "body": body, "tag": tag}
        client = await self._get_client()
        try:
            response = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            self._logger.error("webhook_request_failed", url=self.url, error=str(e))
            raise NotificationDeliveryError(str(e)) from e

        if response.status_code >= 400:
            self._logger.error(
                "webhook_rejected",
                url=self.url,
                status_code=response.status_code,
            )
            raise NotificationDeliveryError(
                f"Webhook returned HTTP {response.status_code}",
                status_code=response.status_code,
                details=response.text[:500],
            )
        self._logger.debug("webhook_delivered", tag=tag)


class FanOutNotifier:
    """Delivers to several channels concurrently; one failing channel does not block the rest."""

    def __init__(self, *notifiers: Notifier):
        self._notifiers = list(notifiers)
        self._logger = logger.bind(component="fan_out_notifier")

    async def notify(self, title: str, body: str, tag: str | None = None) -> None:
        results = await asyncio.gather(
            *(notifier.notify(title, body, tag) for notifier in self._notifiers),
            return_exceptions=True,
        )
        failures: list[str] = []
        for notifier, result in zip(self._notifiers, results):
            if isinstance(result, Exception):
                self._logger.warning(
                    "notifier_channel_failed",
                    channel=type(notifier).__name__,
                    error=str(result),
                )
                failures.append(f"{type(notifier).__name__}: {result}")
        if failures and len(failures) == len(self._notifiers):
            raise NotificationDeliveryError("; ".join(failures))


def build_notifier(publisher: EventPublisher | None = None) -> Notifier:
    """Build the notifier the settings describe.

    The log channel is always present; the event stream and the webhook are
    added when a publisher is given or a webhook URL is configured.
    """
    settings = get_settings()
    channels: list[Notifier] = [LogNotifier()]
    if publisher is not None:
        channels.append(EventNotifier(publisher))
    if settings.notify_webhook_url:
        channels.append(WebhookNotifier())
    if len(channels) == 1:
        return channels[0]
    return FanOutNotifier(*channels)
