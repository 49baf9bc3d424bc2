"""Fire-and-forget triage trigger."""

import asyncio
import json
import logging
import uuid

import httpx
import pytest

from supportdesk.core.async_utils import DetachedTaskRunner
from supportdesk.core.errors import ClassificationServiceError
from supportdesk.schemas.ai import TriageAnalysis, TriageRequest, TriageResponse
from supportdesk.services import ticket_service
from supportdesk.services.triage_dispatch import TriageDispatcher, post_triage_request


def _request() -> TriageRequest:
    return TriageRequest(ticket_id=uuid.uuid4(), subject="Slow site", content="Pages take ages")


@pytest.mark.asyncio
async def test_dispatch_returns_before_submit_completes():
    started = asyncio.Event()
    release = asyncio.Event()

    async def submit(request):
        started.set()
        await release.wait()
        return TriageResponse(analysis=TriageAnalysis(priority="low", sentiment="neutral"))

    runner = DetachedTaskRunner()
    task = TriageDispatcher(submit, runner=runner).dispatch(_request())

    assert task is not None
    assert not task.done()
    await started.wait()
    release.set()
    await runner.drain(timeout=1)
    assert len(runner.failures) == 0


@pytest.mark.asyncio
async def test_dispatch_failure_is_logged_not_raised(caplog):
    async def submit(request):
        raise ClassificationServiceError("classifier returned 500")

    runner = DetachedTaskRunner()
    seen = []
    runner.add_listener(seen.append)
    request = _request()

    with caplog.at_level(logging.WARNING):
        TriageDispatcher(submit, runner=runner).dispatch(request)
        await runner.drain(timeout=1)

    assert len(runner.failures) == 1
    failure = runner.failures[0]
    assert isinstance(failure.error, ClassificationServiceError)
    assert failure.context == {"ticket_id": str(request.ticket_id)}
    assert seen == [failure]
    assert "classifier returned 500" in caplog.text


@pytest.mark.asyncio
async def test_ticket_creation_unaffected_by_triage_failure(db, customer):
    async def submit(request):
        raise ClassificationServiceError("down")

    runner = DetachedTaskRunner()
    ticket = ticket_service.create_ticket(
        db,
        customer_id=customer.id,
        subject="Broken",
        content="Everything is broken",
        triage=TriageDispatcher(submit, runner=runner),
    )
    await runner.drain(timeout=1)

    assert ticket.id is not None
    assert ticket.priority.value == "medium"
    assert len(runner.failures) == 1


# =============================================================================
# HTTP submit
# =============================================================================

@pytest.mark.asyncio
async def test_post_triage_request_sends_secret_and_parses_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["secret"] = request.headers.get("X-Service-Secret")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"success": True, "analysis": {"priority": "high", "sentiment": "negative"}}
        )

    request = _request()
    result = await post_triage_request(
        request,
        base_url="http://classifier.test/",
        secret="s3cret",
        transport=httpx.MockTransport(handler),
    )

    assert seen["url"] == "http://classifier.test/ai-triage"
    assert seen["secret"] == "s3cret"
    assert seen["body"]["ticket_id"] == str(request.ticket_id)
    assert result.analysis.priority.value == "high"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "model unavailable"}),
        httpx.Response(200, json={"error": "quota exceeded"}),
        httpx.Response(200, json={"success": True, "analysis": {"priority": "meh"}}),
        httpx.Response(502, text="bad gateway"),
    ],
)
async def test_post_triage_request_failures(response):
    with pytest.raises(ClassificationServiceError):
        await post_triage_request(
            _request(),
            base_url="http://classifier.test",
            secret="",
            transport=httpx.MockTransport(lambda request: response),
        )


@pytest.mark.asyncio
async def test_post_triage_request_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ClassificationServiceError):
        await post_triage_request(
            _request(),
            base_url="http://classifier.test",
            secret="",
            transport=httpx.MockTransport(handler),
        )
