"""Profile, ticket and message ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from supportdesk.db.base import Base
from supportdesk.db.enums import (
    DEFAULT_TICKET_PRIORITY,
    DEFAULT_TICKET_STATUS,
    Role,
    TicketPriority,
    TicketSentiment,
    TicketStatus,
)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _enum_type(enum_cls, *, name: str) -> Enum:
    """Store str-enums by value."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )


class Profile(Base):
    """Customer or agent identity. Read-only from the conversation engine's view."""

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    role: Mapped[Role] = mapped_column(
        _enum_type(Role, name="profile_role"), nullable=False, default=Role.CUSTOMER
    )
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)


class Ticket(Base):
    """Support conversation with lifecycle and triage metadata."""

    __tablename__ = "tickets"
    __table_args__ = (
        Index("idx_tickets_customer_updated", "customer_id", "updated_at"),
        Index("idx_tickets_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        _enum_type(TicketStatus, name="ticket_status"),
        nullable=False,
        default=DEFAULT_TICKET_STATUS,
    )
    priority: Mapped[TicketPriority] = mapped_column(
        _enum_type(TicketPriority, name="ticket_priority"),
        nullable=False,
        default=DEFAULT_TICKET_PRIORITY,
    )
    sentiment: Mapped[TicketSentiment | None] = mapped_column(
        _enum_type(TicketSentiment, name="ticket_sentiment"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    customer: Mapped["Profile"] = relationship()

    def touch(self, at: datetime | None = None) -> None:
        """Refresh updated_at (status/priority/sentiment/message changes)."""
        self.updated_at = at or _now_utc()


class Message(Base):
    """Immutable entry in a ticket's conversation log."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_ticket_created", "ticket_id", "created_at", "id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    attachments: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    ticket: Mapped["Ticket"] = relationship()
    sender: Mapped["Profile"] = relationship()
