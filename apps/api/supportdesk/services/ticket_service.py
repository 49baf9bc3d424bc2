"""Ticket lifecycle: creation, metadata updates, triage classification and listing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.orm import Session

from supportdesk.core.errors import AuthError, NotFoundError, ValidationError
from supportdesk.core.structured_logging import build_log_context
from supportdesk.db.enums import Role, TicketPriority, TicketSentiment, TicketStatus
from supportdesk.db.models import Message, Profile, Ticket
from supportdesk.schemas.ai import TriageRequest
from supportdesk.schemas.auth import UserSession

if TYPE_CHECKING:
    from supportdesk.services.triage_dispatch import TriageDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketFilter:
    """Agent inbox filter. Every field is optional; all given fields must match."""

    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    q: str | None = None  # subject / owner email / id substring


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} cannot be empty")
    return text


def _coerce_enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str) and enum_cls.has_value(value.strip().lower()):
        return enum_cls(value.strip().lower())
    raise ValidationError(f"Invalid ticket {field}: {value!r}")


# =============================================================================
# Access helpers
# =============================================================================


def get_ticket(db: Session, *, ticket_id: UUID) -> Ticket:
    """Load a ticket or raise NotFoundError."""
    ticket = db.get(Ticket, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found")
    return ticket


def get_ticket_for_session(db: Session, *, session: UserSession, ticket_id: UUID) -> Ticket:
    """Load a ticket the session may see: admins see all, customers their own."""
    ticket = get_ticket(db, ticket_id=ticket_id)
    if not session.is_admin and ticket.customer_id != session.user_id:
        # Do not reveal that another customer's ticket exists.
        raise NotFoundError("Ticket not found")
    return ticket


def require_admin(session: UserSession | None) -> UserSession:
    if session is None:
        raise AuthError("Not authenticated")
    if session.role != Role.ADMIN:
        raise AuthError("Admin role required", authenticated=True)
    return session


# =============================================================================
# Creation
# =============================================================================


def create_ticket(
    db: Session,
    *,
    customer_id: UUID | None,
    subject: str,
    content: str,
    triage: "TriageDispatcher | None" = None,
) -> Ticket:
    """
    Create a ticket and its first message as one unit, then request triage.

    Triage is fire-and-forget: its failure never fails ticket creation.
    """
    if customer_id is None:
        raise AuthError("You must be logged in to create a ticket")
    clean_subject = _require_text(subject, "subject")
    clean_content = _require_text(content, "message")

    now = _now_utc()
    ticket = Ticket(
        customer_id=customer_id,
        subject=clean_subject,
        status=TicketStatus.OPEN,
        priority=TicketPriority.MEDIUM,
        sentiment=None,
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(ticket)
        db.flush()
        db.add(
            Message(
                ticket_id=ticket.id,
                sender_id=customer_id,
                content=clean_content,
                attachments=None,
                is_internal=False,
                created_at=now,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(ticket)

    logger.info(
        "Ticket created",
        extra=build_log_context(user_id=str(customer_id), ticket_id=str(ticket.id)),
    )

    if triage is not None:
        request = TriageRequest(ticket_id=ticket.id, subject=clean_subject, content=clean_content)
        try:
            triage.dispatch(request)
        except Exception as exc:
            # Dispatch only schedules; anything raised here is a wiring fault.
            logger.warning(
                f"Failed to schedule triage: {exc}",
                extra=build_log_context(ticket_id=str(ticket.id)),
            )
    return ticket


# =============================================================================
# Metadata updates (last write wins, no optimistic concurrency check)
# =============================================================================


def update_status(db: Session, *, ticket_id: UUID, status: TicketStatus | str) -> Ticket:
    """Set ticket status. Any transition is allowed, closed -> open included."""
    next_status = _coerce_enum(TicketStatus, status, "status")
    ticket = get_ticket(db, ticket_id=ticket_id)
    ticket.status = next_status
    ticket.touch()
    db.commit()
    db.refresh(ticket)
    return ticket


def update_priority(db: Session, *, ticket_id: UUID, priority: TicketPriority | str) -> Ticket:
    """Set ticket priority. Unrestricted."""
    next_priority = _coerce_enum(TicketPriority, priority, "priority")
    ticket = get_ticket(db, ticket_id=ticket_id)
    ticket.priority = next_priority
    ticket.touch()
    db.commit()
    db.refresh(ticket)
    return ticket


def apply_classification(
    db: Session,
    *,
    ticket_id: UUID,
    priority: TicketPriority | str,
    sentiment: TicketSentiment | str,
) -> Ticket:
    """Privileged triage update of priority and sentiment. Status is untouched."""
    next_priority = _coerce_enum(TicketPriority, priority, "priority")
    next_sentiment = _coerce_enum(TicketSentiment, sentiment, "sentiment")
    ticket = get_ticket(db, ticket_id=ticket_id)
    ticket.priority = next_priority
    ticket.sentiment = next_sentiment
    ticket.touch()
    db.commit()
    db.refresh(ticket)
    return ticket


# =============================================================================
# Listing
# =============================================================================


def list_for_customer(db: Session, *, customer_id: UUID) -> list[Ticket]:
    """Customer's tickets, most recently updated first."""
    query = (
        select(Ticket)
        .where(Ticket.customer_id == customer_id)
        .order_by(Ticket.updated_at.desc(), Ticket.id.desc())
    )
    return list(db.execute(query).scalars().all())


def list_all(db: Session, *, filters: TicketFilter | None = None) -> list[tuple[Ticket, str | None]]:
    """All tickets with owner email for agent views, most recently updated first."""
    query = (
        select(Ticket, Profile.email)
        .join(Profile, Profile.id == Ticket.customer_id, isouter=True)
        .order_by(Ticket.updated_at.desc(), Ticket.id.desc())
    )
    filters = filters or TicketFilter()
    if filters.status:
        query = query.where(Ticket.status == filters.status)
    if filters.priority:
        query = query.where(Ticket.priority == filters.priority)
    if filters.q and filters.q.strip():
        search = f"%{filters.q.strip().lower()}%"
        query = query.where(
            or_(
                func.lower(Ticket.subject).like(search),
                func.lower(Profile.email).like(search),
                func.lower(cast(Ticket.id, String)).like(search),
            )
        )
    return [(ticket, email) for ticket, email in db.execute(query).all()]


def latest_messages(
    db: Session, *, ticket_ids: list[UUID], include_internal: bool = True
) -> dict[UUID, Message]:
    """Most recent message per ticket (for unread badges in ticket lists)."""
    if not ticket_ids:
        return {}
    query = select(Message).where(Message.ticket_id.in_(ticket_ids))
    if not include_internal:
        query = query.where(Message.is_internal.is_(False))
    query = query.order_by(Message.ticket_id, Message.created_at.desc(), Message.id.desc())
    latest: dict[UUID, Message] = {}
    for message in db.execute(query).scalars():
        latest.setdefault(message.ticket_id, message)
    return latest
