"""Classification service endpoints: ticket triage and reply drafting.

Failures are reported as ``500 {"error": ...}`` so callers can tell a
classification outage from an auth problem.
"""

import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from supportdesk.core.deps import SERVICE_SECRET_HEADER, get_db, require_admin_session
from supportdesk.core.errors import AuthError, SupportDeskError
from supportdesk.core.rate_limit import AI_LIMIT, limiter
from supportdesk.core.security import verify_service_secret
from supportdesk.core.structured_logging import build_log_context
from supportdesk.schemas.ai import (
    AIErrorResponse,
    ReplyDraftRequest,
    ReplyDraftResponse,
    TriageRequest,
    TriageResponse,
)
from supportdesk.schemas.auth import UserSession
from supportdesk.services import change_feed_service, ticket_service, triage_service
from supportdesk.services.ai_provider import AIProvider, get_configured_provider

router = APIRouter(tags=["AI"])
logger = logging.getLogger(__name__)


def get_ai_provider() -> AIProvider | None:
    """Configured LLM provider, or None when no key is set. Overridden in tests."""
    try:
        return get_configured_provider()
    except ValueError as exc:
        logger.warning(f"AI provider unavailable: {exc}")
        return None


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content=AIErrorResponse(error=message).model_dump())


# ============================================================================
# Triage
# ============================================================================


@router.post("/ai-triage", response_model=TriageResponse, responses={500: {"model": AIErrorResponse}})
@limiter.limit(AI_LIMIT)
async def ai_triage(
    request: Request,
    body: TriageRequest,
    x_service_secret: str | None = Header(None, alias=SERVICE_SECRET_HEADER),
    db: Session = Depends(get_db),
    provider: AIProvider | None = Depends(get_ai_provider),
):
    """Classify a ticket and write priority/sentiment back. Called by the dispatcher."""
    if not verify_service_secret(x_service_secret):
        raise AuthError("Invalid service secret")
    if provider is None:
        return _error("AI provider is not configured")

    try:
        analysis = await triage_service.triage_ticket(
            db,
            provider,
            ticket_id=body.ticket_id,
            subject=body.subject,
            content=body.content,
        )
    except SupportDeskError as exc:
        logger.warning(
            f"Triage failed: {exc.message}",
            extra=build_log_context(ticket_id=str(body.ticket_id)),
        )
        return _error(exc.message)

    ticket = await run_in_threadpool(ticket_service.get_ticket, db, ticket_id=body.ticket_id)
    await change_feed_service.publish_ticket_updated(ticket)
    return TriageResponse(success=True, analysis=analysis)


# ============================================================================
# Reply drafting
# ============================================================================


@router.post("/ai-reply", response_model=ReplyDraftResponse, responses={500: {"model": AIErrorResponse}})
@limiter.limit(AI_LIMIT)
async def ai_reply(
    request: Request,
    body: ReplyDraftRequest,
    session: UserSession = Depends(require_admin_session),
    db: Session = Depends(get_db),
    provider: AIProvider | None = Depends(get_ai_provider),
):
    """Draft an agent reply from the recent conversation. Nothing is written."""
    if provider is None:
        return _error("AI provider is not configured")
    try:
        reply = await triage_service.draft_reply(db, provider, ticket_id=body.ticket_id)
    except SupportDeskError as exc:
        logger.warning(
            f"Reply draft failed: {exc.message}",
            extra=build_log_context(user_id=str(session.user_id), ticket_id=str(body.ticket_id)),
        )
        return _error(exc.message)
    return ReplyDraftResponse(reply=reply)
