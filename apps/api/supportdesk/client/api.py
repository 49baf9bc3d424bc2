"""HTTP client for the support desk API.

Every failure surfaces as a ``SupportDeskError`` subclass; raw httpx errors
never reach the caller.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import httpx

from supportdesk.core.config import settings
from supportdesk.core.errors import (
    AttachmentUploadError,
    AuthError,
    ChannelDisruptionError,
    ClassificationServiceError,
    NotFoundError,
    SupportDeskError,
    TicketClosedError,
    ValidationError,
)
from supportdesk.db.enums import TicketPriority, TicketStatus
from supportdesk.schemas.ai import ReplyDraftResponse
from supportdesk.schemas.ticketing import (
    AttachmentUploadResponse,
    DashboardStats,
    MessageRead,
    TicketDetailResponse,
    TicketListItem,
    TicketRead,
)
from supportdesk.services.attachment_service import validate_attachment

logger = logging.getLogger(__name__)

STATUS_ERRORS: dict[int, type[SupportDeskError]] = {
    404: NotFoundError,
    409: TicketClosedError,
    422: ValidationError,
    503: ChannelDisruptionError,
}


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
        if isinstance(detail, list):
            # FastAPI request validation errors
            return "; ".join(str(item.get("msg", item)) for item in detail if isinstance(item, dict)) or str(detail)
        if detail:
            return str(detail)
    return response.reason_phrase


def error_from_response(
    response: httpx.Response, *, server_error: type[SupportDeskError] = SupportDeskError
) -> SupportDeskError:
    """Map an error response back onto the taxonomy."""
    detail = _error_detail(response)
    status = response.status_code
    if status == 401:
        return AuthError(detail)
    if status == 403:
        return AuthError(detail, authenticated=True)
    if status in STATUS_ERRORS:
        return STATUS_ERRORS[status](detail)
    if status >= 500:
        return server_error(detail)
    error = SupportDeskError(detail)
    error.status_code = status
    return error


class SupportDeskClient:
    """Async API wrapper used by UI shells and the conversation view."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SupportDeskClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        server_error: type[SupportDeskError] = SupportDeskError,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {url} failed: {exc}")
            raise server_error(f"Request failed: {exc}") from exc
        if response.is_error:
            raise error_from_response(response, server_error=server_error)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # =========================================================================
    # Tickets
    # =========================================================================

    async def create_ticket(self, *, subject: str, content: str) -> TicketRead:
        if not subject.strip() or not content.strip():
            raise ValidationError("Subject and message are required")
        data = await self._request("POST", "/tickets", json={"subject": subject, "content": content})
        return TicketRead.model_validate(data)

    async def list_tickets(
        self,
        *,
        scope: str = "mine",
        status: TicketStatus | str | None = None,
        priority: TicketPriority | str | None = None,
        q: str | None = None,
    ) -> list[TicketListItem]:
        params: dict[str, str] = {"scope": scope}
        if status:
            params["status"] = getattr(status, "value", status)
        if priority:
            params["priority"] = getattr(priority, "value", priority)
        if q:
            params["q"] = q
        data = await self._request("GET", "/tickets", params=params)
        return [TicketListItem.model_validate(item) for item in data["items"]]

    async def get_ticket(self, ticket_id: UUID) -> TicketDetailResponse:
        data = await self._request("GET", f"/tickets/{ticket_id}")
        return TicketDetailResponse.model_validate(data)

    async def update_ticket(
        self,
        ticket_id: UUID,
        *,
        status: TicketStatus | str | None = None,
        priority: TicketPriority | str | None = None,
    ) -> TicketRead:
        body: dict[str, str] = {}
        if status is not None:
            body["status"] = getattr(status, "value", status)
        if priority is not None:
            body["priority"] = getattr(priority, "value", priority)
        data = await self._request("PATCH", f"/tickets/{ticket_id}", json=body)
        return TicketRead.model_validate(data)

    # =========================================================================
    # Messages
    # =========================================================================

    async def list_messages(self, ticket_id: UUID) -> list[MessageRead]:
        data = await self._request("GET", f"/tickets/{ticket_id}/messages")
        return [MessageRead.model_validate(item) for item in data["items"]]

    async def send_message(
        self,
        ticket_id: UUID,
        *,
        content: str,
        attachments: list[str] | None = None,
        is_internal: bool = False,
    ) -> MessageRead:
        data = await self._request(
            "POST",
            f"/tickets/{ticket_id}/messages",
            json={"content": content, "attachments": attachments, "is_internal": is_internal},
        )
        return MessageRead.model_validate(data)

    async def upload_attachment(
        self,
        ticket_id: UUID,
        *,
        filename: str,
        data: bytes,
        content_type: str,
        content: str = "",
    ) -> AttachmentUploadResponse:
        """Validate locally first: a rejected file never touches the network."""
        validate_attachment(filename, content_type, len(data))
        body = await self._request(
            "POST",
            f"/tickets/{ticket_id}/attachments",
            files={"file": (filename, data, content_type)},
            data={"content": content},
            server_error=AttachmentUploadError,
        )
        return AttachmentUploadResponse.model_validate(body)

    # =========================================================================
    # Agent tools
    # =========================================================================

    async def draft_reply(self, ticket_id: UUID) -> str:
        data = await self._request(
            "POST",
            "/ai-reply",
            json={"ticket_id": str(ticket_id)},
            server_error=ClassificationServiceError,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
        return ReplyDraftResponse.model_validate(data).reply

    async def dashboard_stats(self) -> DashboardStats:
        data = await self._request("GET", "/dashboard/stats")
        return DashboardStats.model_validate(data)
