"""
Change feed subscriber: live message inserts and ticket updates for one ticket.

``subscribe`` returns a handle at once and establishes the transport
subscription in the background. While the transport is down nothing is
delivered; the subscriber reconnects with linear backoff, re-subscribes
every live handle and calls each handle's ``on_reconnect`` so the consumer
can re-fetch whatever it missed. When retries run out every live handle
is marked failed and its ``on_error`` receives a ``ChannelDisruptionError``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Union
from uuid import UUID

from supportdesk.client.transport import RealtimeTransport, call_maybe_async
from supportdesk.core.errors import ChannelDisruptionError
from supportdesk.core.structured_logging import build_log_context
from supportdesk.schemas.realtime import MESSAGE_INSERTED, TICKET_UPDATED, ticket_topic
from supportdesk.schemas.ticketing import MessageRead, TicketRead

logger = logging.getLogger(__name__)

InsertCallback = Callable[[MessageRead], Union[None, Awaitable[None]]]
TicketCallback = Callable[[TicketRead], Union[None, Awaitable[None]]]
ReconnectCallback = Callable[[], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[ChannelDisruptionError], Union[None, Awaitable[None]]]


class SubscriptionState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    CLOSED = "closed"


class SubscriptionHandle:
    """One consumer's subscription to one ticket's change feed."""

    def __init__(
        self,
        ticket_id: UUID,
        on_insert: InsertCallback,
        *,
        on_ticket_update: TicketCallback | None = None,
        on_reconnect: ReconnectCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        self.ticket_id = ticket_id
        self.topic = ticket_topic(ticket_id)
        self.on_insert = on_insert
        self.on_ticket_update = on_ticket_update
        self.on_reconnect = on_reconnect
        self.on_error = on_error
        self.state = SubscriptionState.PENDING
        self.error: ChannelDisruptionError | None = None
        self._token: Any = None
        self._settled = asyncio.Event()

    @property
    def active(self) -> bool:
        return self.state == SubscriptionState.ACTIVE

    async def ready(self, timeout: float | None = None) -> None:
        """Wait until the subscription is established (or has given up)."""
        await asyncio.wait_for(self._settled.wait(), timeout)
        if self.state == SubscriptionState.FAILED:
            raise self.error or ChannelDisruptionError("Subscription failed")

    def _settle(self) -> None:
        self._settled.set()

    def __repr__(self) -> str:
        return f"<SubscriptionHandle {self.topic} {self.state.value}>"


class ChangeFeedSubscriber:
    """Manages change-feed subscriptions over one realtime transport."""

    def __init__(
        self,
        transport: RealtimeTransport,
        *,
        max_reconnect_attempts: int = 5,
        reconnect_delay: float = 0.5,
    ):
        self.transport = transport
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self._handles: list[SubscriptionHandle] = []
        self._tasks: set[asyncio.Task] = set()
        self._reconnect_task: asyncio.Task | None = None
        self._closed = False
        transport.add_status_listener(self._on_status)

    @property
    def handles(self) -> list[SubscriptionHandle]:
        return list(self._handles)

    # =========================================================================
    # Subscribe / unsubscribe
    # =========================================================================

    def subscribe(
        self,
        ticket_id: UUID,
        on_insert: InsertCallback,
        *,
        on_ticket_update: TicketCallback | None = None,
        on_reconnect: ReconnectCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> SubscriptionHandle:
        """Register interest in a ticket. Returns before the subscription is live."""
        if self._closed:
            raise ChannelDisruptionError("Change feed is closed")
        handle = SubscriptionHandle(
            ticket_id,
            on_insert,
            on_ticket_update=on_ticket_update,
            on_reconnect=on_reconnect,
            on_error=on_error,
        )
        self._handles.append(handle)
        self._spawn(self._establish(handle))
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop deliveries for ``handle``. Idempotent; safe while subscribe is in flight."""
        if handle.state == SubscriptionState.CLOSED:
            return
        handle.state = SubscriptionState.CLOSED
        if handle in self._handles:
            self._handles.remove(handle)
        handle._settle()
        token, handle._token = handle._token, None
        if token is not None:
            await self._release(token)

    async def close(self) -> None:
        """Release every subscription and stop reconnecting."""
        if self._closed:
            return
        self._closed = True
        self.transport.remove_status_listener(self._on_status)
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
        for handle in list(self._handles):
            await self.unsubscribe(handle)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def retry(self) -> asyncio.Task | None:
        """Restart the reconnect cycle for failed handles (the UI retry affordance)."""
        failed = [h for h in self._handles if h.state == SubscriptionState.FAILED]
        if self._closed or not failed:
            return None
        for handle in failed:
            handle.state = SubscriptionState.RECONNECTING
            handle.error = None
            handle._settled.clear()
        return self._start_reconnect()

    # =========================================================================
    # Internals
    # =========================================================================

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _release(self, token: Any) -> None:
        try:
            await self.transport.unsubscribe(token)
        except Exception as exc:
            # Teardown path; the connection may already be gone.
            logger.debug(f"Transport unsubscribe failed: {exc}")

    async def _attach(self, handle: SubscriptionHandle) -> None:
        token = await self.transport.subscribe(handle.topic, partial(self._deliver, handle))
        if handle.state == SubscriptionState.CLOSED:
            # Unsubscribed while the subscribe call was in flight.
            await self._release(token)
            return
        handle._token = token
        handle.state = SubscriptionState.ACTIVE
        handle._settle()

    async def _establish(self, handle: SubscriptionHandle) -> None:
        try:
            if not self.transport.connected:
                await self.transport.connect()
            await self._attach(handle)
        except Exception as exc:
            if handle.state == SubscriptionState.CLOSED:
                return
            logger.warning(
                f"Change feed subscribe failed: {exc}",
                extra=build_log_context(ticket_id=str(handle.ticket_id), topic=handle.topic),
            )
            handle.state = SubscriptionState.RECONNECTING
            self._start_reconnect()

    async def _deliver(self, handle: SubscriptionHandle, event: dict) -> None:
        if handle.state != SubscriptionState.ACTIVE:
            return
        event_type = event.get("type")
        try:
            if event_type == MESSAGE_INSERTED:
                await call_maybe_async(handle.on_insert, MessageRead.model_validate(event["data"]))
            elif event_type == TICKET_UPDATED:
                await call_maybe_async(
                    handle.on_ticket_update, TicketRead.model_validate(event["data"])
                )
        except Exception:
            # A consumer bug must not tear down the shared connection.
            logger.exception(
                "Change feed consumer raised",
                extra=build_log_context(ticket_id=str(handle.ticket_id), topic=handle.topic),
            )

    def _on_status(self, connected: bool) -> None:
        if connected or self._closed:
            return
        lost = False
        for handle in self._handles:
            if handle.state in (SubscriptionState.ACTIVE, SubscriptionState.PENDING):
                handle.state = SubscriptionState.RECONNECTING
                handle._token = None
                handle._settled.clear()
                lost = True
        if lost:
            logger.info("Change feed connection lost; reconnecting")
            self._start_reconnect()

    def _start_reconnect(self) -> asyncio.Task:
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = self._spawn(self._reconnect_loop())
        return self._reconnect_task

    def _waiting(self) -> list[SubscriptionHandle]:
        return [h for h in self._handles if h.state == SubscriptionState.RECONNECTING]

    async def _reconnect_loop(self) -> None:
        reattached: list[SubscriptionHandle] = []
        for attempt in range(1, self.max_reconnect_attempts + 1):
            await asyncio.sleep(self.reconnect_delay * attempt)
            if self._closed:
                return
            waiting = self._waiting()
            if not waiting:
                return
            try:
                if not self.transport.connected:
                    await self.transport.connect()
                for handle in waiting:
                    if handle.state == SubscriptionState.RECONNECTING:
                        await self._attach(handle)
                        reattached.append(handle)
            except Exception as exc:
                logger.warning(
                    f"Reconnect attempt {attempt}/{self.max_reconnect_attempts} failed: {exc}"
                )
                continue

            for handle in reattached:
                if handle.state != SubscriptionState.ACTIVE:
                    continue
                try:
                    await call_maybe_async(handle.on_reconnect)
                except Exception:
                    logger.exception(
                        "Reconnect callback raised",
                        extra=build_log_context(ticket_id=str(handle.ticket_id)),
                    )
            return

        for handle in self._waiting():
            error = ChannelDisruptionError("Live updates are unavailable. Retry to reconnect.")
            handle.state = SubscriptionState.FAILED
            handle.error = error
            handle._settle()
            logger.warning(
                "Change feed gave up reconnecting",
                extra=build_log_context(ticket_id=str(handle.ticket_id), topic=handle.topic),
            )
            try:
                await call_maybe_async(handle.on_error, error)
            except Exception:
                logger.exception("Change feed error callback raised")
