"""Typing presence for one ticket conversation.

Typing signals are ephemeral: they travel on their own topic, are never
stored, and expire on the receiving side after a short timeout.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable
from uuid import UUID

from supportdesk.client.transport import RealtimeTransport
from supportdesk.core.config import settings
from supportdesk.schemas.realtime import TYPING, TypingEvent, typing_topic

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[frozenset[UUID]], None]


class PresenceChannel:
    """
    Sends the viewer's typing signals and tracks who else is typing.

    Per remote sender: idle -> typing on a typing event, (re)starting a
    ``timeout`` timer; the timer expiring or a message from that sender
    arriving returns it to idle. The viewer's own events are ignored.
    """

    def __init__(
        self,
        transport: RealtimeTransport,
        *,
        ticket_id: UUID,
        viewer_id: UUID,
        timeout: float | None = None,
        on_change: ChangeCallback | None = None,
        min_interval: float | None = None,
    ):
        self.transport = transport
        self.ticket_id = ticket_id
        self.viewer_id = viewer_id
        self.topic = typing_topic(ticket_id)
        self.timeout = timeout if timeout is not None else settings.TYPING_TIMEOUT_SECONDS
        self.on_change = on_change
        self.min_interval = min_interval
        self._token: Any = None
        self._generation = 0
        self._listening = False
        self._timers: dict[UUID, asyncio.TimerHandle] = {}
        self._last_sent: float | None = None

    @property
    def joined(self) -> bool:
        return self._token is not None

    @property
    def is_typing(self) -> bool:
        return bool(self._timers)

    @property
    def typing_senders(self) -> frozenset[UUID]:
        return frozenset(self._timers)

    async def join(self) -> None:
        """Subscribe to the typing topic. Call again after a reconnect to re-attach."""
        if self._token is not None:
            return
        generation = self._generation
        if not self._listening:
            self.transport.add_status_listener(self._on_status)
            self._listening = True
        if not self.transport.connected:
            await self.transport.connect()
        token = await self.transport.subscribe(self.topic, self._on_event)
        if generation != self._generation or self._token is not None:
            # Left (or joined elsewhere) while the subscribe call was in flight.
            await self._release(token)
            return
        self._token = token

    async def leave(self) -> None:
        """Idempotent; safe during teardown when the connection is already gone."""
        self._generation += 1
        if self._listening:
            self.transport.remove_status_listener(self._on_status)
            self._listening = False
        token, self._token = self._token, None
        self._clear_timers()
        if token is not None:
            await self._release(token)

    async def _release(self, token: Any) -> None:
        try:
            await self.transport.unsubscribe(token)
        except Exception as exc:
            logger.debug(f"Presence unsubscribe failed: {exc}")

    def _clear_timers(self) -> bool:
        for timer in self._timers.values():
            timer.cancel()
        had_senders = bool(self._timers)
        self._timers.clear()
        return had_senders

    def _on_status(self, connected: bool) -> None:
        if connected:
            return
        # The transport dropped every subscription; typing state is stale.
        self._token = None
        if self._clear_timers():
            self._changed()

    async def notify_typing(self) -> bool:
        """Broadcast that the viewer is typing. Returns False when throttled or not joined."""
        if self._token is None:
            return False
        now = time.monotonic()
        if (
            self.min_interval
            and self._last_sent is not None
            and now - self._last_sent < self.min_interval
        ):
            return False
        event = TypingEvent(ticket_id=self.ticket_id, sender_id=self.viewer_id)
        await self.transport.publish(
            self.topic,
            {"type": TYPING, "topic": self.topic, "data": event.model_dump(mode="json")},
        )
        self._last_sent = now
        return True

    def message_received(self, sender_id: UUID) -> None:
        """A committed message from ``sender_id`` ends their typing state at once."""
        timer = self._timers.pop(sender_id, None)
        if timer is not None:
            timer.cancel()
            self._changed()

    def _on_event(self, event: dict) -> None:
        if event.get("type") != TYPING:
            return
        try:
            typing = TypingEvent.model_validate(event.get("data") or {})
        except ValueError:
            logger.debug("Ignoring malformed typing event")
            return
        if typing.sender_id == self.viewer_id or typing.ticket_id != self.ticket_id:
            return

        previous = self._timers.pop(typing.sender_id, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._timers[typing.sender_id] = loop.call_later(
            self.timeout, self._expire, typing.sender_id
        )
        if previous is None:
            self._changed()

    def _expire(self, sender_id: UUID) -> None:
        if self._timers.pop(sender_id, None) is not None:
            self._changed()

    def _changed(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self.typing_senders)
        except Exception:
            logger.exception("Presence change callback raised")
