"""Append-only message log per ticket."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Protocol, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from supportdesk.core.config import settings
from supportdesk.core.errors import TicketClosedError, ValidationError
from supportdesk.core.structured_logging import build_log_context
from supportdesk.db.enums import TicketStatus
from supportdesk.db.models import Message, Ticket

logger = logging.getLogger(__name__)

ATTACHMENT_MESSAGE_TEMPLATE = "Sent an attachment: {filename}"


class _Ordered(Protocol):
    id: UUID
    sender_id: UUID
    created_at: datetime


MessageT = TypeVar("MessageT", bound=_Ordered)


def message_sort_key(message: _Ordered) -> tuple[datetime, str]:
    """Canonical total order inside one ticket: (created_at, id) ascending."""
    return (message.created_at, str(message.id))


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def append_message(
    db: Session,
    *,
    ticket: Ticket,
    sender_id: UUID,
    content: str | None,
    attachments: list[str] | None = None,
    is_internal: bool = False,
    attachment_filename: str | None = None,
) -> Message:
    """
    Append a message to a ticket.

    The closed check uses the ticket snapshot the caller holds; there is no
    atomic re-check against a concurrent status change.
    """
    if ticket.status == TicketStatus.CLOSED:
        raise TicketClosedError("This ticket has been closed.")

    urls = [url for url in (attachments or []) if url]
    body = (content or "").strip()
    if not body and urls and attachment_filename:
        body = ATTACHMENT_MESSAGE_TEMPLATE.format(filename=attachment_filename)
    if not body and not urls:
        raise ValidationError("Message content cannot be empty")

    now = _now_utc()
    message = Message(
        ticket_id=ticket.id,
        sender_id=sender_id,
        content=body,
        attachments=urls or None,
        is_internal=is_internal,
        created_at=now,
    )
    try:
        db.add(message)
        ticket.touch(now)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(message)

    logger.debug(
        "Message appended",
        extra=build_log_context(
            user_id=str(sender_id), ticket_id=str(ticket.id), message_id=str(message.id)
        ),
    )
    return message


def list_for_ticket(
    db: Session, *, ticket_id: UUID, include_internal: bool = True
) -> list[Message]:
    """Messages in canonical order."""
    query = select(Message).where(Message.ticket_id == ticket_id)
    if not include_internal:
        query = query.where(Message.is_internal.is_(False))
    query = query.order_by(Message.created_at.asc(), Message.id.asc())
    return list(db.execute(query).scalars().all())


def recent_messages(
    db: Session, *, ticket_id: UUID, limit: int | None = None
) -> list[Message]:
    """The most recent ``limit`` messages, returned oldest first."""
    limit = limit or settings.REPLY_CONTEXT_MESSAGES
    query = (
        select(Message)
        .where(Message.ticket_id == ticket_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
    )
    rows = list(db.execute(query).scalars().all())
    rows.reverse()
    return rows


def group_messages(
    messages: Iterable[MessageT],
    *,
    window: timedelta | None = None,
) -> list[list[MessageT]]:
    """
    Split an ordered message sequence into visual groups.

    Adjacent messages share a group iff same sender and the gap between them
    is strictly less than ``window`` (two minutes by default). Pure.
    """
    window = window if window is not None else timedelta(seconds=settings.MESSAGE_GROUP_WINDOW_SECONDS)
    groups: list[list[MessageT]] = []
    previous: MessageT | None = None
    for message in messages:
        if (
            previous is not None
            and groups
            and message.sender_id == previous.sender_id
            and message.created_at - previous.created_at < window
        ):
            groups[-1].append(message)
        else:
            groups.append([message])
        previous = message
    return groups


def merge_messages(existing: Sequence[MessageT], incoming: Iterable[MessageT]) -> list[MessageT]:
    """Union by id, re-sorted by the canonical key. First copy of an id wins."""
    by_id: dict[UUID, MessageT] = {}
    for message in list(existing) + list(incoming):
        by_id.setdefault(message.id, message)
    return sorted(by_id.values(), key=message_sort_key)
