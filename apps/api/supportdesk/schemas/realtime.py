"""Realtime envelope models shared by the websocket router and the client."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel

MESSAGE_INSERTED = "message.inserted"
TICKET_UPDATED = "ticket.updated"
TYPING = "typing"


def ticket_topic(ticket_id: UUID | str) -> str:
    """Change-feed topic for one ticket."""
    return f"ticket:{ticket_id}"


def typing_topic(ticket_id: UUID | str) -> str:
    """Presence topic for one ticket, kept apart from the change feed."""
    return f"ticket-typing:{ticket_id}"


class WsInbound(BaseModel):
    """Client -> server."""

    type: str  # typing | ping
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server -> client."""

    type: str  # message.inserted | ticket.updated | typing | error
    topic: str
    data: dict[str, Any] = {}


class TypingEvent(BaseModel):
    """Ephemeral typing signal; never persisted."""

    ticket_id: UUID
    sender_id: UUID
