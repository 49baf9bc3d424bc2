"""Pydantic schemas for ticket and message APIs."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from supportdesk.db.enums import Role, TicketPriority, TicketSentiment, TicketStatus


class ProfileRead(BaseModel):
    """Profile as shown next to messages and in admin views."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str | None = None
    role: Role
    created_at: datetime


class TicketRead(BaseModel):
    """Ticket row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    subject: str
    status: TicketStatus
    priority: TicketPriority
    sentiment: TicketSentiment | None = None
    created_at: datetime
    updated_at: datetime


class TicketListItem(TicketRead):
    """Inbox row with the owner's email for agent views."""

    customer_email: str | None = None


class TicketListResponse(BaseModel):
    items: list[TicketListItem]


class TicketCreateRequest(BaseModel):
    subject: str
    content: str


class TicketPatchRequest(BaseModel):
    """Agent metadata update. Either field may be omitted."""

    status: TicketStatus | None = None
    priority: TicketPriority | None = None


class MessageRead(BaseModel):
    """Committed message. Immutable."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_id: UUID
    sender_id: UUID
    content: str
    attachments: list[str] | None = None
    is_internal: bool = False
    created_at: datetime

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.created_at, str(self.id))


class MessageCreateRequest(BaseModel):
    content: str = ""
    attachments: list[str] | None = None
    is_internal: bool = False


class MessageListResponse(BaseModel):
    items: list[MessageRead]


class TicketDetailResponse(BaseModel):
    ticket: TicketRead
    customer: ProfileRead | None = None
    messages: list[MessageRead] = Field(default_factory=list)


class AttachmentUploadResponse(BaseModel):
    url: str
    message: MessageRead


class StatusCounts(BaseModel):
    open: int = 0
    resolved: int = 0
    closed: int = 0


class PriorityCounts(BaseModel):
    urgent: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class DashboardStats(BaseModel):
    """Aggregate stats consumed by the admin dashboard."""

    total_tickets: int
    active_users: int
    status_counts: StatusCounts
    priority_counts: PriorityCounts
