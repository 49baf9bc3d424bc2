"""Fire-and-forget triage requests issued after ticket creation."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

import httpx

from supportdesk.core.async_utils import DetachedTaskRunner, background
from supportdesk.core.config import settings
from supportdesk.core.deps import SERVICE_SECRET_HEADER
from supportdesk.core.errors import ClassificationServiceError
from supportdesk.core.structured_logging import build_log_context
from supportdesk.schemas.ai import TriageRequest, TriageResponse

logger = logging.getLogger(__name__)

TriageSubmit = Callable[[TriageRequest], Awaitable[TriageResponse]]


async def post_triage_request(
    request: TriageRequest,
    *,
    base_url: str | None = None,
    secret: str | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TriageResponse:
    """POST the request to the classification endpoint and parse its answer."""
    base_url = (base_url or settings.AI_SERVICE_URL).rstrip("/")
    secret = settings.AI_SERVICE_SECRET if secret is None else secret
    headers = {SERVICE_SECRET_HEADER: secret} if secret else {}

    try:
        async with httpx.AsyncClient(
            timeout=timeout or settings.AI_TIMEOUT_SECONDS, transport=transport
        ) as client:
            response = await client.post(
                f"{base_url}/ai-triage",
                json=request.model_dump(mode="json"),
                headers=headers,
            )
    except httpx.HTTPError as exc:
        raise ClassificationServiceError(f"Triage request failed: {exc}") from exc

    try:
        data = response.json()
    except ValueError:
        data = {}
    if response.status_code >= 400 or "error" in data:
        detail = data.get("error") if isinstance(data, dict) else None
        raise ClassificationServiceError(
            f"Triage failed ({response.status_code}): {detail or response.text[:200]}"
        )
    try:
        return TriageResponse.model_validate(data)
    except ValueError as exc:
        raise ClassificationServiceError(f"Malformed triage response: {exc}") from exc


class TriageDispatcher:
    """
    Schedules triage for a newly created ticket without awaiting it.

    Failures are logged and recorded on the runner's error channel; the
    creator never sees them and the ticket keeps its default priority.
    """

    def __init__(
        self,
        submit: TriageSubmit | None = None,
        *,
        runner: DetachedTaskRunner | None = None,
    ):
        self._submit = submit or post_triage_request
        self._runner = runner or background

    @property
    def runner(self) -> DetachedTaskRunner:
        return self._runner

    def dispatch(self, request: TriageRequest):
        """Spawn the triage call. Returns the task (or None when run inline)."""
        context = build_log_context(ticket_id=str(request.ticket_id))
        return self._runner.spawn(
            self._run(request),
            name=f"triage:{request.ticket_id}",
            context=context,
        )

    async def _run(self, request: TriageRequest) -> TriageResponse:
        result = await self._submit(request)
        logger.info(
            f"Triage completed: {result.analysis.priority.value}/{result.analysis.sentiment.value}",
            extra=build_log_context(ticket_id=str(request.ticket_id)),
        )
        return result


def get_triage_dispatcher() -> TriageDispatcher:
    """FastAPI dependency; overridden in tests."""
    return TriageDispatcher()
