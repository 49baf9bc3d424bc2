"""SupportDeskClient against the app: typed results and error mapping."""

import uuid

import httpx
import pytest

from supportdesk.client.api import SupportDeskClient, error_from_response
from supportdesk.core.errors import (
    AuthError,
    ChannelDisruptionError,
    NotFoundError,
    SupportDeskError,
    TicketClosedError,
    ValidationError,
)
from supportdesk.core.security import create_session_token
from supportdesk.db.enums import TicketStatus
from supportdesk.main import app


def _client_for(profile) -> SupportDeskClient:
    token = create_session_token(profile.id, profile.role.value)
    return SupportDeskClient(
        "http://test", token=token, transport=httpx.ASGITransport(app=app)
    )


@pytest.fixture
async def customer_api(override_app, customer):
    async with _client_for(customer) as api:
        yield api


@pytest.fixture
async def admin_api(override_app, admin):
    async with _client_for(admin) as api:
        yield api


@pytest.mark.asyncio
async def test_create_fetch_and_reply(customer_api, admin_api, customer, triage_dispatcher):
    ticket = await customer_api.create_ticket(subject="VPN drops", content="Every 10 minutes")

    assert ticket.status == TicketStatus.OPEN
    assert len(triage_dispatcher.requests) == 1

    message = await admin_api.send_message(ticket.id, content="Which client version?")
    detail = await customer_api.get_ticket(ticket.id)

    assert detail.ticket.id == ticket.id
    assert detail.customer.id == customer.id
    assert [m.content for m in detail.messages] == ["Every 10 minutes", "Which client version?"]
    assert detail.messages[-1].id == message.id

    mine = await customer_api.list_tickets()
    assert [t.id for t in mine] == [ticket.id]


@pytest.mark.asyncio
async def test_create_ticket_validates_locally(customer_api, triage_dispatcher):
    with pytest.raises(ValidationError):
        await customer_api.create_ticket(subject="", content="body")
    assert triage_dispatcher.requests == []


@pytest.mark.asyncio
async def test_unknown_ticket_maps_to_not_found(customer_api):
    with pytest.raises(NotFoundError):
        await customer_api.get_ticket(uuid.uuid4())


@pytest.mark.asyncio
async def test_closed_ticket_maps_to_ticket_closed(customer_api, admin_api):
    ticket = await customer_api.create_ticket(subject="Done", content="Thanks")
    closed = await admin_api.update_ticket(ticket.id, status=TicketStatus.CLOSED)
    assert closed.status == TicketStatus.CLOSED

    with pytest.raises(TicketClosedError):
        await customer_api.send_message(ticket.id, content="one more thing")


@pytest.mark.asyncio
async def test_customer_forbidden_maps_to_auth_error(customer_api):
    with pytest.raises(AuthError) as exc:
        await customer_api.dashboard_stats()
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_admin_dashboard_stats(customer_api, admin_api):
    await customer_api.create_ticket(subject="One", content="first")

    stats = await admin_api.dashboard_stats()

    assert stats.total_tickets == 1
    assert stats.active_users == 1


@pytest.mark.asyncio
async def test_transport_failure_maps_to_taxonomy():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with SupportDeskClient("http://api.test", transport=httpx.MockTransport(handler)) as api:
        with pytest.raises(SupportDeskError):
            await api.list_tickets()


@pytest.mark.parametrize(
    "status,body,expected",
    [
        (401, {"detail": "Not authenticated"}, AuthError),
        (404, {"detail": "Ticket not found"}, NotFoundError),
        (409, {"detail": "This ticket has been closed."}, TicketClosedError),
        (422, {"detail": [{"msg": "field required"}]}, ValidationError),
        (503, {"detail": "unavailable"}, ChannelDisruptionError),
    ],
)
def test_error_from_response(status, body, expected):
    error = error_from_response(httpx.Response(status, json=body))

    assert type(error) is expected
    assert error.message


def test_error_from_response_server_error_class():
    error = error_from_response(
        httpx.Response(500, json={"error": "model unavailable"}), server_error=TicketClosedError
    )

    assert isinstance(error, TicketClosedError)
    assert error.message == "model unavailable"
