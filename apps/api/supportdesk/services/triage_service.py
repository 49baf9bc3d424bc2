"""Classification service: ticket triage and reply drafting.

Both calls are stateless; everything the model sees is passed in per call.
"""

from __future__ import annotations

import json
import logging
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from supportdesk.core.config import settings
from supportdesk.core.errors import ClassificationServiceError
from supportdesk.core.structured_logging import build_log_context
from supportdesk.db.models import Ticket
from supportdesk.schemas.ai import TriageAnalysis
from supportdesk.services import message_service, ticket_service
from supportdesk.services.ai_provider import AIProvider, ChatMessage

logger = logging.getLogger(__name__)

TRIAGE_SYSTEM_PROMPT = (
    "You are an AI triage assistant. Analyze the ticket and return a JSON object with "
    '"priority" (low, medium, high, urgent) and "sentiment" (positive, neutral, negative).'
)

REPLY_SYSTEM_PROMPT = "You are a helpful customer support AI."

REPLY_PROMPT_TEMPLATE = """You are an expert customer support agent for "HiveMind".
Your goal is to draft a polite, professional, and helpful reply to the customer based on the conversation history.

Context:
Subject: {subject}

Conversation History:
{history}

Draft a response that:
1. Acknowledges the customer's last message.
2. Provides a helpful solution or asks clarifying questions if needed.
3. Maintains a friendly and professional tone.
4. Is concise (under 150 words).

Return ONLY the response text. Do not include "Subject:" or any other metadata."""


# =============================================================================
# Triage
# =============================================================================

_decoder = json.JSONDecoder()


def parse_triage_analysis(text: str | None) -> TriageAnalysis | None:
    """First JSON object in a model reply, fenced or wrapped in prose, as a TriageAnalysis."""
    if not text:
        return None
    start = text.find("{")
    if start < 0:
        return None
    try:
        data, _ = _decoder.raw_decode(text, start)
    except ValueError as exc:
        logger.warning(f"Triage response is not valid JSON: {exc}")
        return None
    if not isinstance(data, dict):
        return None
    try:
        return TriageAnalysis.model_validate(data)
    except ValidationError as exc:
        logger.warning(f"Triage response failed validation: {exc}")
        return None


async def classify_ticket(provider: AIProvider, *, subject: str, content: str) -> TriageAnalysis:
    """Ask the model for priority/sentiment. Tolerates code-fenced JSON."""
    try:
        response = await provider.chat(
            [
                ChatMessage(role="system", content=TRIAGE_SYSTEM_PROMPT),
                ChatMessage(role="user", content=f"Subject: {subject}\nMessage: {content}"),
            ],
            temperature=0.0,
            max_tokens=200,
            json_mode=True,
        )
    except Exception as exc:
        raise ClassificationServiceError(f"Triage request failed: {exc}") from exc

    logger.debug(f"Triage response: {response.content!r}")
    analysis = parse_triage_analysis(response.content)
    if analysis is None:
        raise ClassificationServiceError("Malformed triage response")
    return analysis


async def triage_ticket(
    db: Session,
    provider: AIProvider,
    *,
    ticket_id: UUID,
    subject: str,
    content: str,
) -> TriageAnalysis:
    """Classify a ticket and apply the privileged priority/sentiment update."""
    analysis = await classify_ticket(provider, subject=subject, content=content)
    await run_in_threadpool(
        ticket_service.apply_classification,
        db,
        ticket_id=ticket_id,
        priority=analysis.priority,
        sentiment=analysis.sentiment,
    )
    logger.info(
        f"Ticket triaged as {analysis.priority.value}/{analysis.sentiment.value}",
        extra=build_log_context(ticket_id=str(ticket_id)),
    )
    return analysis


# =============================================================================
# Reply drafting
# =============================================================================


def build_reply_history(ticket: Ticket, messages) -> str:
    """One line per message, labelled by whether the sender owns the ticket."""
    lines = []
    for message in messages:
        role = "Customer" if message.sender_id == ticket.customer_id else "Support Agent"
        lines.append(f"{role}: {message.content}")
    return "\n".join(lines)


def build_reply_prompt(db: Session, *, ticket_id: UUID) -> str:
    ticket = ticket_service.get_ticket(db, ticket_id=ticket_id)
    messages = message_service.recent_messages(
        db, ticket_id=ticket_id, limit=settings.REPLY_CONTEXT_MESSAGES
    )
    return REPLY_PROMPT_TEMPLATE.format(
        subject=ticket.subject,
        history=build_reply_history(ticket, messages),
    )


async def draft_reply(db: Session, provider: AIProvider, *, ticket_id: UUID) -> str:
    """Draft an agent reply from the latest conversation window. Performs no writes."""
    prompt = await run_in_threadpool(build_reply_prompt, db, ticket_id=ticket_id)
    try:
        response = await provider.chat(
            [
                ChatMessage(role="system", content=REPLY_SYSTEM_PROMPT),
                ChatMessage(role="user", content=prompt),
            ],
            temperature=0.7,
        )
    except Exception as exc:
        raise ClassificationServiceError(f"Reply draft request failed: {exc}") from exc

    reply = (response.content or "").strip()
    if not reply:
        raise ClassificationServiceError("Empty reply draft")
    return reply
