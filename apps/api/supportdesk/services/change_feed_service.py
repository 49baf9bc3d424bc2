"""Row-change notifications: publish committed messages and ticket updates to live subscribers."""

from __future__ import annotations

import logging

from supportdesk.core.structured_logging import build_log_context
from supportdesk.core.websocket import ConnectionManager, manager as default_manager
from supportdesk.db.models import Message, Ticket
from supportdesk.schemas.realtime import MESSAGE_INSERTED, TICKET_UPDATED, WsOutbound, ticket_topic
from supportdesk.schemas.ticketing import MessageRead, TicketRead

logger = logging.getLogger(__name__)


def message_inserted_event(message: Message | MessageRead) -> dict:
    payload = MessageRead.model_validate(message)
    return WsOutbound(
        type=MESSAGE_INSERTED,
        topic=ticket_topic(payload.ticket_id),
        data=payload.model_dump(mode="json"),
    ).model_dump()


def ticket_updated_event(ticket: Ticket | TicketRead) -> dict:
    payload = TicketRead.model_validate(ticket)
    return WsOutbound(
        type=TICKET_UPDATED,
        topic=ticket_topic(payload.id),
        data=payload.model_dump(mode="json"),
    ).model_dump()


async def publish_message_inserted(
    message: Message | MessageRead, *, connections: ConnectionManager | None = None
) -> int:
    """Notify the ticket's subscribers of a committed message. Internal notes reach admins only."""
    connections = connections or default_manager
    event = message_inserted_event(message)
    delivered = await connections.publish(
        event["topic"], event, admin_only=bool(event["data"].get("is_internal"))
    )
    logger.debug(
        "Published message insert",
        extra=build_log_context(
            ticket_id=event["data"]["ticket_id"],
            message_id=event["data"]["id"],
            topic=event["topic"],
        ),
    )
    return delivered


async def publish_ticket_updated(
    ticket: Ticket | TicketRead,
    *,
    connections: ConnectionManager | None = None,
    admin_only: bool = False,
) -> int:
    """
    Notify the ticket's subscribers that the ticket row changed.

    ``admin_only`` keeps activity caused by an internal note away from customers.
    """
    connections = connections or default_manager
    event = ticket_updated_event(ticket)
    return await connections.publish(event["topic"], event, admin_only=admin_only)
