"""
WebSocket topic manager for the change feed and typing presence.

Connections subscribe to per-ticket topics. Events published on a topic
reach every local subscriber; when a Redis backplane is configured they
are also relayed to the other API instances.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Protocol
from uuid import UUID

from supportdesk.core.redis_client import get_async_redis_client

logger = logging.getLogger(__name__)

WS_EVENTS_CHANNEL = "supportdesk:ws-events"


class TextSink(Protocol):
    """Anything that can receive a text frame (Starlette WebSocket, local bridges)."""

    async def send_text(self, data: str) -> None: ...


@dataclass(frozen=True)
class Subscriber:
    user_id: UUID
    is_admin: bool = False


class ConnectionManager:
    """Manages topic subscriptions for live connections."""

    def __init__(self, instance_id: str | None = None):
        # topic -> {sink: subscriber}
        self._topics: Dict[str, Dict[TextSink, Subscriber]] = {}
        self._lock = asyncio.Lock()
        self.instance_id = instance_id or uuid.uuid4().hex

    async def connect(self, websocket) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()

    async def subscribe(
        self, sink: TextSink, topic: str, *, user_id: UUID, is_admin: bool = False
    ) -> None:
        async with self._lock:
            self._topics.setdefault(topic, {})[sink] = Subscriber(user_id=user_id, is_admin=is_admin)

    async def unsubscribe(self, sink: TextSink, topic: str | None = None) -> None:
        """Remove a sink from one topic, or from every topic. Idempotent."""
        async with self._lock:
            topics = [topic] if topic is not None else list(self._topics)
            for name in topics:
                subscribers = self._topics.get(name)
                if not subscribers:
                    continue
                subscribers.pop(sink, None)
                if not subscribers:
                    del self._topics[name]

    async def disconnect(self, sink: TextSink) -> None:
        """Drop a connection from all topics."""
        await self.unsubscribe(sink)

    async def publish(
        self,
        topic: str,
        message: dict,
        *,
        admin_only: bool = False,
        exclude: TextSink | None = None,
    ) -> int:
        """Deliver locally and relay to other instances. Returns local deliveries."""
        delivered = await self.deliver_local(topic, message, admin_only=admin_only, exclude=exclude)
        await _publish_ws_event(
            {
                "source_id": self.instance_id,
                "topic": topic,
                "admin_only": admin_only,
                "message": message,
            }
        )
        return delivered

    async def deliver_local(
        self,
        topic: str,
        message: dict,
        *,
        admin_only: bool = False,
        exclude: TextSink | None = None,
    ) -> int:
        async with self._lock:
            subscribers = dict(self._topics.get(topic, {}))

        if not subscribers:
            return 0

        data = json.dumps(message, default=str)
        closed = []
        delivered = 0

        for sink, subscriber in subscribers.items():
            if sink is exclude:
                continue
            if admin_only and not subscriber.is_admin:
                continue
            try:
                await sink.send_text(data)
                delivered += 1
            except Exception:
                # Connection closed or errored
                closed.append(sink)

        # Clean up closed connections
        if closed:
            async with self._lock:
                for sink in closed:
                    for name in list(self._topics):
                        self._topics[name].pop(sink, None)
                        if not self._topics[name]:
                            del self._topics[name]
        return delivered

    def get_subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, {}))

    def get_topics(self) -> list[str]:
        return list(self._topics)

    def get_total_connections(self) -> int:
        """Distinct sinks across all topics."""
        sinks = set()
        for subscribers in self._topics.values():
            sinks.update(subscribers)
        return len(sinks)


# Singleton instance
manager = ConnectionManager()


# =============================================================================
# Redis backplane
# =============================================================================

_listener_task: asyncio.Task | None = None


def should_deliver_ws_event(event: dict, instance_id: str) -> bool:
    """Skip events this instance published itself (already delivered locally)."""
    return event.get("source_id") != instance_id


async def _publish_ws_event(event: dict[str, Any]) -> None:
    client = get_async_redis_client()
    if client is None:
        return
    try:
        await client.publish(WS_EVENTS_CHANNEL, json.dumps(event, default=str))
    except Exception as exc:
        logger.warning(f"WebSocket backplane publish failed: {exc}")


async def _listen(client) -> None:
    pubsub = client.pubsub()
    await pubsub.subscribe(WS_EVENTS_CHANNEL)
    try:
        async for item in pubsub.listen():
            if item.get("type") != "message":
                continue
            try:
                event = json.loads(item["data"])
            except (TypeError, ValueError):
                continue
            if not should_deliver_ws_event(event, manager.instance_id):
                continue
            await manager.deliver_local(
                event.get("topic", ""),
                event.get("message", {}),
                admin_only=bool(event.get("admin_only")),
            )
    finally:
        await pubsub.unsubscribe(WS_EVENTS_CHANNEL)
        await pubsub.aclose()


async def start_websocket_event_listener() -> None:
    """Start relaying backplane events to local sockets. No-op without Redis."""
    global _listener_task
    client = get_async_redis_client()
    if client is None or _listener_task is not None:
        return
    _listener_task = asyncio.create_task(_listen(client), name="ws-backplane-listener")


async def stop_websocket_event_listener() -> None:
    global _listener_task
    if _listener_task is None:
        return
    _listener_task.cancel()
    try:
        await _listener_task
    except asyncio.CancelledError:
        pass
    except Exception as exc:
        logger.warning(f"WebSocket backplane listener ended with error: {exc}")
    _listener_task = None
