"""
Conversation view: one open ticket as a UI shell sees it.

Fetched history and live feed events land in the same list, deduplicated
by message id and ordered by ``(created_at, id)``. The feed subscription
starts together with the initial fetch so nothing committed in between is
lost; events that arrive before the fetch resolves are merged in when it
does.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Protocol
from uuid import UUID

from supportdesk.client.change_feed import ChangeFeedSubscriber, SubscriptionHandle
from supportdesk.client.presence import PresenceChannel
from supportdesk.client.read_state import ReadStateTracker
from supportdesk.core.errors import ChannelDisruptionError, TicketClosedError, ValidationError
from supportdesk.core.structured_logging import build_log_context
from supportdesk.db.enums import TicketStatus
from supportdesk.schemas.ticketing import MessageRead, ProfileRead, TicketDetailResponse, TicketRead
from supportdesk.services.message_service import group_messages, merge_messages

logger = logging.getLogger(__name__)


class ConversationApi(Protocol):
    async def get_ticket(self, ticket_id: UUID) -> TicketDetailResponse: ...

    async def send_message(self, ticket_id: UUID, *, content: str) -> MessageRead: ...


PresenceFactory = Callable[[UUID, UUID], PresenceChannel]


class ConversationView:
    def __init__(
        self,
        api: ConversationApi,
        feed: ChangeFeedSubscriber,
        presence_factory: PresenceFactory,
        read_state: ReadStateTracker,
        *,
        ticket_id: UUID,
        viewer_id: UUID,
    ):
        self.api = api
        self.feed = feed
        self.presence_factory = presence_factory
        self.read_state = read_state
        self.ticket_id = ticket_id
        self.viewer_id = viewer_id

        self.ticket: TicketRead | None = None
        self.customer: ProfileRead | None = None
        self.messages: list[MessageRead] = []
        self.first_unread_group: int | None = None
        self.error: ChannelDisruptionError | None = None
        self.presence: PresenceChannel | None = None
        self.active = False
        self._handle: SubscriptionHandle | None = None
        self._closed = False

    @property
    def groups(self) -> list[list[MessageRead]]:
        return group_messages(self.messages)

    @property
    def is_closed_ticket(self) -> bool:
        return self.ticket is not None and self.ticket.status == TicketStatus.CLOSED

    @property
    def is_typing(self) -> bool:
        return self.presence is not None and self.presence.is_typing

    async def open(self) -> None:
        """Subscribe and fetch concurrently, then mark the conversation read."""
        self._handle = self.feed.subscribe(
            self.ticket_id,
            self._on_insert,
            on_ticket_update=self._on_ticket_update,
            on_reconnect=self.refresh,
            on_error=self._on_feed_error,
        )
        self.presence = self.presence_factory(self.ticket_id, self.viewer_id)

        results = await asyncio.gather(
            self._handle.ready(),
            self._initial_fetch(),
            self.presence.join(),
            return_exceptions=True,
        )
        feed_result, fetch_result, presence_result = results
        if self._closed:
            # Closed while opening; close() already released feed and presence.
            return
        if isinstance(fetch_result, BaseException):
            await self.close()
            raise fetch_result
        if isinstance(feed_result, ChannelDisruptionError):
            self.error = feed_result
        elif isinstance(feed_result, BaseException):
            await self.close()
            raise feed_result
        if isinstance(presence_result, BaseException):
            # Typing indicators are best effort; the conversation still works.
            logger.warning(
                f"Typing presence unavailable: {presence_result}",
                extra=build_log_context(ticket_id=str(self.ticket_id)),
            )

        self.active = True
        self.read_state.mark_read(self.viewer_id, self.ticket_id, self._read_stamp())

    async def _initial_fetch(self) -> None:
        detail = await self.api.get_ticket(self.ticket_id)
        self._apply_detail(detail)
        self.first_unread_group = self.read_state.first_unread_group(
            self.viewer_id, self.ticket_id, self.messages
        )

    def _apply_detail(self, detail: TicketDetailResponse) -> None:
        self.ticket = detail.ticket
        self.customer = detail.customer
        # Fetched copies first; feed copies of the same id are dropped.
        self.messages = merge_messages(detail.messages, self.messages)

    def _read_stamp(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self.messages:
            return max(now, self.messages[-1].created_at)
        return now

    async def refresh(self) -> None:
        """Re-attach typing presence, re-fetch ticket and messages (after a reconnect) and merge."""
        if self._closed:
            return
        if self.presence is not None and not self.presence.joined:
            try:
                await self.presence.join()
            except Exception as exc:
                logger.warning(
                    f"Typing presence rejoin failed: {exc}",
                    extra=build_log_context(ticket_id=str(self.ticket_id)),
                )
        detail = await self.api.get_ticket(self.ticket_id)
        self._apply_detail(detail)
        self.error = None
        if self.active:
            self.read_state.mark_read(self.viewer_id, self.ticket_id, self._read_stamp())

    def _on_insert(self, message: MessageRead) -> None:
        if self._closed or message.ticket_id != self.ticket_id:
            return
        self.messages = merge_messages(self.messages, [message])
        if self.presence is not None:
            self.presence.message_received(message.sender_id)
        if self.active:
            self.read_state.mark_read(self.viewer_id, self.ticket_id, self._read_stamp())

    def _on_ticket_update(self, ticket: TicketRead) -> None:
        if self._closed or ticket.id != self.ticket_id:
            return
        self.ticket = ticket

    def _on_feed_error(self, error: ChannelDisruptionError) -> None:
        self.error = error

    def retry(self):
        """Retry live updates after the feed gave up."""
        return self.feed.retry()

    async def send(self, content: str) -> MessageRead:
        """Post a message. Refused locally when the known ticket state is closed."""
        if self.is_closed_ticket:
            raise TicketClosedError("This ticket has been closed.")
        if not (content or "").strip():
            raise ValidationError("Message content cannot be empty")
        message = await self.api.send_message(self.ticket_id, content=content)
        if not self._closed:
            self.messages = merge_messages(self.messages, [message])
        return message

    async def typing(self) -> bool:
        if self.presence is None or self._closed:
            return False
        return await self.presence.notify_typing()

    async def close(self) -> None:
        """Tear down feed and presence. Idempotent; in-flight sends still complete."""
        if self._closed:
            return
        self._closed = True
        self.active = False
        if self._handle is not None:
            await self.feed.unsubscribe(self._handle)
        if self.presence is not None:
            await self.presence.leave()
