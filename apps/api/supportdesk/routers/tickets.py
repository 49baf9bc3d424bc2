"""Ticket inbox/detail/message APIs."""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from supportdesk.core.deps import get_current_session, get_db
from supportdesk.core.errors import AuthError, ValidationError
from supportdesk.db.enums import TicketPriority, TicketStatus
from supportdesk.schemas.auth import UserSession
from supportdesk.schemas.ticketing import (
    MessageCreateRequest,
    MessageListResponse,
    MessageRead,
    ProfileRead,
    TicketCreateRequest,
    TicketDetailResponse,
    TicketListItem,
    TicketListResponse,
    TicketPatchRequest,
    TicketRead,
)
from supportdesk.services import change_feed_service, message_service, ticket_service
from supportdesk.services.triage_dispatch import TriageDispatcher, get_triage_dispatcher

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("", response_model=TicketRead, status_code=201)
def create_ticket(
    body: TicketCreateRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    triage: TriageDispatcher = Depends(get_triage_dispatcher),
) -> TicketRead:
    """Open a ticket with its first message. Triage runs in the background."""
    ticket = ticket_service.create_ticket(
        db,
        customer_id=session.user_id,
        subject=body.subject,
        content=body.content,
        triage=triage,
    )
    return TicketRead.model_validate(ticket)


@router.get("", response_model=TicketListResponse)
def list_tickets(
    scope: Literal["mine", "all"] = "mine",
    status: TicketStatus | None = None,
    priority: TicketPriority | None = None,
    q: str | None = Query(None, max_length=200),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> TicketListResponse:
    """Own tickets, or every ticket (agents only) with inbox filters."""
    if scope == "all":
        ticket_service.require_admin(session)
        rows = ticket_service.list_all(
            db, filters=ticket_service.TicketFilter(status=status, priority=priority, q=q)
        )
        items = [
            TicketListItem.model_validate(ticket).model_copy(update={"customer_email": email})
            for ticket, email in rows
        ]
    else:
        items = [
            TicketListItem.model_validate(ticket).model_copy(update={"customer_email": session.email})
            for ticket in ticket_service.list_for_customer(db, customer_id=session.user_id)
        ]
    return TicketListResponse(items=items)


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> TicketDetailResponse:
    ticket = ticket_service.get_ticket_for_session(db, session=session, ticket_id=ticket_id)
    messages = message_service.list_for_ticket(
        db, ticket_id=ticket.id, include_internal=session.is_admin
    )
    return TicketDetailResponse(
        ticket=TicketRead.model_validate(ticket),
        customer=ProfileRead.model_validate(ticket.customer) if ticket.customer else None,
        messages=[MessageRead.model_validate(m) for m in messages],
    )


@router.patch("/{ticket_id}", response_model=TicketRead)
async def patch_ticket(
    ticket_id: UUID,
    body: TicketPatchRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> TicketRead:
    """Agent status/priority update. Last write wins."""
    ticket_service.require_admin(session)
    if body.status is None and body.priority is None:
        raise ValidationError("Nothing to update")

    ticket = None
    if body.status is not None:
        ticket = await run_in_threadpool(
            ticket_service.update_status, db, ticket_id=ticket_id, status=body.status
        )
    if body.priority is not None:
        ticket = await run_in_threadpool(
            ticket_service.update_priority, db, ticket_id=ticket_id, priority=body.priority
        )

    payload = TicketRead.model_validate(ticket)
    await change_feed_service.publish_ticket_updated(payload)
    return payload


@router.get("/{ticket_id}/messages", response_model=MessageListResponse)
def list_messages(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> MessageListResponse:
    ticket = ticket_service.get_ticket_for_session(db, session=session, ticket_id=ticket_id)
    messages = message_service.list_for_ticket(
        db, ticket_id=ticket.id, include_internal=session.is_admin
    )
    return MessageListResponse(items=[MessageRead.model_validate(m) for m in messages])


@router.post("/{ticket_id}/messages", response_model=MessageRead, status_code=201)
async def post_message(
    ticket_id: UUID,
    body: MessageCreateRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> MessageRead:
    """Append a message and notify the ticket's live subscribers."""
    if body.is_internal and not session.is_admin:
        raise AuthError("Only agents can post internal notes", authenticated=True)

    ticket = await run_in_threadpool(
        ticket_service.get_ticket_for_session, db, session=session, ticket_id=ticket_id
    )
    message = await run_in_threadpool(
        message_service.append_message,
        db,
        ticket=ticket,
        sender_id=session.user_id,
        content=body.content,
        attachments=body.attachments,
        is_internal=body.is_internal,
    )
    payload = MessageRead.model_validate(message)
    # The append touched updated_at; the ticket row reloads after commit.
    touched = await run_in_threadpool(TicketRead.model_validate, ticket)
    await change_feed_service.publish_message_inserted(payload)
    await change_feed_service.publish_ticket_updated(touched, admin_only=payload.is_internal)
    return payload
