"""Schemas for the classification (triage) and reply-draft endpoints."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from supportdesk.db.enums import TicketPriority, TicketSentiment


class TriageRequest(BaseModel):
    """Body of POST /ai-triage."""

    ticket_id: UUID
    subject: str
    content: str


class TriageAnalysis(BaseModel):
    """Normalised classifier output."""

    priority: TicketPriority
    sentiment: TicketSentiment

    @field_validator("priority", "sentiment", mode="before")
    @classmethod
    def _lower(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class TriageResponse(BaseModel):
    success: bool = True
    analysis: TriageAnalysis


class ReplyDraftRequest(BaseModel):
    """Body of POST /ai-reply."""

    ticket_id: UUID


class ReplyDraftResponse(BaseModel):
    reply: str = Field(..., min_length=1)


class AIErrorResponse(BaseModel):
    error: str
