"""WebSocket stream of ledger events for in-app toasts and live views.

Clients connect, optionally narrow the stream with ``subscribe`` and
``unsubscribe`` messages, and are sent the buffered recent events on
connect so a freshly opened view is not empty.
"""

import asyncio
import contextlib
import json
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog
import websockets
from websockets.asyncio.server import Server, ServerConnection

from wealthflow.config import get_settings
from wealthflow.events.types import EventType, LedgerEvent

logger = structlog.get_logger(__name__)

EventHook = Callable[[LedgerEvent], None]


@dataclass
class Subscription:
    """Stream filters of one client. An empty set does not filter."""

    event_types: set[EventType] = field(default_factory=set)
    account_ids: set[str] = field(default_factory=set)

    def accepts(self, event: LedgerEvent) -> bool:
        if self.event_types and event.event_type not in self.event_types:
            return False
        # Events that do not concern an account pass the account filter.
        account_id = getattr(event, "account_id", None)
        if self.account_ids and account_id and account_id not in self.account_ids:
            return False
        return True

    def change(self, data: dict[str, Any], add: bool) -> None:
        """Add or remove the event types and accounts named in a client message."""
        event_types: set[EventType] = set()
        for value in data.get("event_types", []):
            with contextlib.suppress(ValueError):
                event_types.add(EventType(value))
        account_ids = {str(account_id) for account_id in data.get("account_ids", [])}

        if add:
            self.event_types |= event_types
            self.account_ids |= account_ids
        else:
            self.event_types -= event_types
            self.account_ids -= account_ids

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "subscribed",
            "event_types": sorted(et.value for et in self.event_types),
            "account_ids": sorted(self.account_ids),
        }


@dataclass(eq=False)
class Client:
    """A connected frontend."""

    websocket: ServerConnection
    subscription: Subscription = field(default_factory=Subscription)

    @property
    def label(self) -> str:
        address = self.websocket.remote_address
        if isinstance(address, tuple):
            return f"{address[0]}:{address[1]}"
        return str(address)

    async def send(self, payload: dict[str, Any]) -> None:
        await self.websocket.send(json.dumps(payload))


class EventPublisher:
    """Buffers ledger events, runs hooks on them and streams them to clients.

    ``publish`` never blocks the caller: delivery to connected clients runs
    as a background task owned by the publisher. ``broadcast`` does the
    same work and waits for it.

    Usage:
        publisher = EventPublisher()
        await publisher.start()
        shell = LedgerShell(store, publisher=publisher)
        ...
        await publisher.stop()
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        buffer_size: int = 100,
    ):
        settings = get_settings()
        self.host = host or settings.ws_host
        self.port = port or settings.ws_port

        self._history: deque[LedgerEvent] = deque(maxlen=buffer_size)
        self._hooks: list[EventHook] = []
        self._clients: set[Client] = set()
        self._deliveries: set[asyncio.Task[None]] = set()
        self._server: Server | None = None
        self._logger = logger.bind(component="event_publisher")

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def recent_events(self) -> list[LedgerEvent]:
        return list(self._history)

    def add_event_hook(self, hook: EventHook) -> None:
        """Call ``hook`` synchronously for every event, before it is sent."""
        self._hooks.append(hook)

    def remove_event_hook(self, hook: EventHook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    # === Publishing ===

    def publish(self, event: LedgerEvent) -> None:
        """Record an event and schedule its delivery."""
        self._record(event)
        if self._server is None or not self._clients:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._deliveries.add(task)
        task.add_done_callback(self._delivery_done)

    async def broadcast(self, event: LedgerEvent) -> None:
        """Record an event and wait until every interested client has been sent it."""
        self._record(event)
        await self._deliver(event)

    async def drain(self) -> None:
        """Wait for the deliveries ``publish`` has scheduled so far."""
        if self._deliveries:
            await asyncio.gather(*self._deliveries, return_exceptions=True)

    def _record(self, event: LedgerEvent) -> None:
        self._history.append(event)
        for hook in list(self._hooks):
            try:
                hook(event)
            except Exception as e:
                self._logger.error(
                    "event_hook_failed", event_type=event.event_type.value, error=str(e)
                )

    def _delivery_done(self, task: asyncio.Task[None]) -> None:
        self._deliveries.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._logger.error("event_delivery_failed", error=str(task.exception()))

    async def _deliver(self, event: LedgerEvent) -> None:
        targets = [c for c in list(self._clients) if c.subscription.accepts(event)]
        if not targets:
            return
        payload = json.dumps(event.to_dict())
        results = await asyncio.gather(
            *(client.websocket.send(payload) for client in targets),
            return_exceptions=True,
        )
        for client, result in zip(targets, results):
            if isinstance(result, websockets.ConnectionClosed):
                self._clients.discard(client)
            elif isinstance(result, Exception):
                self._logger.error("event_send_failed", client=client.label, error=str(result))

    # === Server ===

    async def start(self) -> None:
        if self._server is not None:
            self._logger.warning("publisher_already_running")
            return
        self._server = await websockets.serve(
            self._serve_client, self.host, self.port, ping_interval=30, ping_timeout=10
        )
        self._logger.info("publisher_started", address=f"ws://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Cancel pending deliveries, disconnect clients and close the server."""
        if self._server is None:
            return
        for task in list(self._deliveries):
            task.cancel()
        await asyncio.gather(
            *(client.websocket.close(1001, "Server shutting down") for client in self._clients),
            return_exceptions=True,
        )
        self._clients.clear()
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        self._logger.info("publisher_stopped")

    async def _serve_client(self, websocket: ServerConnection) -> None:
        client = Client(websocket)
        self._clients.add(client)
        self._logger.info("client_connected", client=client.label)
        try:
            await self.replay_history(client)
            async for message in websocket:
                await self.handle_message(client, message)
        except websockets.ConnectionClosed as e:
            self._logger.info("client_disconnected", client=client.label, reason=str(e))
        finally:
            self._clients.discard(client)

    async def replay_history(self, client: Client) -> None:
        if self._history:
            await client.send(
                {"type": "event_history", "events": [e.to_dict() for e in self._history]}
            )

    async def handle_message(self, client: Client, message: str | bytes) -> None:
        """Apply a ``subscribe``, ``unsubscribe`` or ``ping`` message from a client."""
        try:
            data = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError):
            self._logger.warning("invalid_client_message", client=client.label)
            return

        kind = data.get("type") if isinstance(data, dict) else None
        if kind == "ping":
            await client.send({"type": "pong"})
        elif kind in ("subscribe", "unsubscribe"):
            client.subscription.change(data, add=kind == "subscribe")
            self._logger.debug(
                "client_subscription_changed",
                client=client.label,
                event_types=len(client.subscription.event_types),
                accounts=len(client.subscription.account_ids),
            )
            if kind == "subscribe":
                await client.send(client.subscription.to_message())
        else:
            self._logger.warning("unknown_client_message", client=client.label, kind=kind)


_publisher: EventPublisher | None = None


def get_publisher() -> EventPublisher:
    """Process-wide publisher, created on first use."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher
