"""Pydantic schemas for API request/response models."""

from supportdesk.schemas.ai import (
    ReplyDraftRequest,
    ReplyDraftResponse,
    TriageAnalysis,
    TriageRequest,
    TriageResponse,
)
from supportdesk.schemas.auth import SessionCreateRequest, SessionResponse, TokenPayload, UserSession
from supportdesk.schemas.realtime import TypingEvent, WsInbound, WsOutbound
from supportdesk.schemas.ticketing import (
    DashboardStats,
    MessageCreateRequest,
    MessageRead,
    ProfileRead,
    TicketCreateRequest,
    TicketListItem,
    TicketPatchRequest,
    TicketRead,
)

__all__ = [
    "DashboardStats",
    "MessageCreateRequest",
    "MessageRead",
    "ProfileRead",
    "ReplyDraftRequest",
    "ReplyDraftResponse",
    "SessionCreateRequest",
    "SessionResponse",
    "TicketCreateRequest",
    "TicketListItem",
    "TicketPatchRequest",
    "TicketRead",
    "TokenPayload",
    "TriageAnalysis",
    "TriageRequest",
    "TriageResponse",
    "TypingEvent",
    "UserSession",
    "WsInbound",
    "WsOutbound",
]
