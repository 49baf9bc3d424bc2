"""Per-viewer, per-ticket read watermarks kept in client-local storage."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Mapping, Sequence
from uuid import UUID

from supportdesk.client.kv_store import KeyValueStore
from supportdesk.services.message_service import group_messages

logger = logging.getLogger(__name__)

KEY_PREFIX = "supportdesk:last_read"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReadStateTracker:
    """
    Read watermarks: the time a viewer last had a ticket's conversation open.

    A message is unread for a viewer iff someone else sent it after the
    viewer's watermark (or there is no watermark yet).
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def key(viewer_id: UUID, ticket_id: UUID) -> str:
        return f"{KEY_PREFIX}:{viewer_id}:{ticket_id}"

    def mark_read(self, viewer_id: UUID, ticket_id: UUID, at: datetime | None = None) -> datetime:
        """Overwrite the watermark. Never compares with the stored value."""
        stamp = _as_utc(at) if at is not None else datetime.now(timezone.utc)
        self.store.set(self.key(viewer_id, ticket_id), stamp.isoformat())
        return stamp

    def watermark(self, viewer_id: UUID, ticket_id: UUID) -> datetime | None:
        raw = self.store.get(self.key(viewer_id, ticket_id))
        if not raw:
            return None
        try:
            return _as_utc(datetime.fromisoformat(raw))
        except ValueError:
            logger.warning(f"Discarding unreadable read watermark for ticket {ticket_id}")
            return None

    def clear(self, viewer_id: UUID, ticket_id: UUID) -> None:
        self.store.remove(self.key(viewer_id, ticket_id))

    def is_unread(self, viewer_id: UUID, ticket_id: UUID, last_message) -> bool:
        if last_message is None or last_message.sender_id == viewer_id:
            return False
        mark = self.watermark(viewer_id, ticket_id)
        return mark is None or _as_utc(last_message.created_at) > mark

    def unread_ticket_ids(self, viewer_id: UUID, latest_by_ticket: Mapping[UUID, object]) -> set[UUID]:
        """Ticket ids whose latest message is unread, for list badges."""
        return {
            ticket_id
            for ticket_id, message in latest_by_ticket.items()
            if self.is_unread(viewer_id, ticket_id, message)
        }

    def first_unread_group(
        self,
        viewer_id: UUID,
        ticket_id: UUID,
        messages: Sequence,
        *,
        window: timedelta | None = None,
    ) -> int | None:
        """Index of the first message group holding an unread message, or None."""
        for index, group in enumerate(group_messages(messages, window=window)):
            if any(self.is_unread(viewer_id, ticket_id, message) for message in group):
                return index
        return None
