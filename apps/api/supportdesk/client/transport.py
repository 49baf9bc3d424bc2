"""
Realtime transport seam.

The change feed and presence channel only need topic subscribe/publish and
a connection status signal. ``HubTransport`` provides that in-process on
top of the server's ``ConnectionManager`` (tests, embedded agents); a UI
shell supplies its own implementation over a WebSocket.
"""

from __future__ import annotations

import inspect
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Union
from uuid import UUID

from supportdesk.core.websocket import ConnectionManager

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict], Union[None, Awaitable[None]]]
StatusListener = Callable[[bool], None]


class RealtimeTransport(Protocol):
    @property
    def connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def subscribe(self, topic: str, callback: EventCallback) -> Any: ...

    async def unsubscribe(self, token: Any) -> None: ...

    async def publish(self, topic: str, event: dict) -> None: ...

    def add_status_listener(self, listener: StatusListener) -> None: ...

    def remove_status_listener(self, listener: StatusListener) -> None: ...


async def call_maybe_async(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a sync or async consumer callback."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


@dataclass(eq=False)
class _TopicSink:
    """One subscription as seen by the ConnectionManager."""

    topic: str
    callback: EventCallback
    token: str

    async def send_text(self, data: str) -> None:
        await call_maybe_async(self.callback, json.loads(data))


class HubTransport:
    """In-process transport over a ConnectionManager.

    ``drop()`` simulates an unplanned connection loss: every subscription is
    gone and status listeners see ``False``.
    """

    def __init__(self, connections: ConnectionManager, *, user_id: UUID, is_admin: bool = False):
        self._connections = connections
        self.user_id = user_id
        self.is_admin = is_admin
        self._connected = False
        self._sinks: dict[str, _TopicSink] = {}
        self._listeners: list[StatusListener] = []

    @property
    def connected(self) -> bool:
        return self._connected

    def add_status_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, connected: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(connected)
            except Exception:
                logger.exception("Transport status listener raised")

    async def connect(self) -> None:
        if self._connected:
            return
        self._connected = True
        self._notify(True)

    async def disconnect(self) -> None:
        await self._release_all()
        if self._connected:
            self._connected = False
            self._notify(False)

    async def drop(self) -> None:
        await self.disconnect()

    async def _release_all(self) -> None:
        sinks = list(self._sinks.values())
        self._sinks.clear()
        for sink in sinks:
            await self._connections.unsubscribe(sink, sink.topic)

    async def subscribe(self, topic: str, callback: EventCallback) -> str:
        if not self._connected:
            raise ConnectionError("Transport is not connected")
        sink = _TopicSink(topic=topic, callback=callback, token=uuid.uuid4().hex)
        self._sinks[sink.token] = sink
        await self._connections.subscribe(
            sink, topic, user_id=self.user_id, is_admin=self.is_admin
        )
        return sink.token

    async def unsubscribe(self, token: str) -> None:
        sink = self._sinks.pop(token, None)
        if sink is not None:
            await self._connections.unsubscribe(sink, sink.topic)

    async def publish(self, topic: str, event: dict) -> None:
        if not self._connected:
            raise ConnectionError("Transport is not connected")
        await self._connections.publish(topic, event)
