"""Ticket socket: auth, ping, typing fan-out, change-feed delivery."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from supportdesk.core.security import create_session_token
from supportdesk.main import app
from supportdesk.schemas.realtime import MESSAGE_INSERTED, TYPING, ticket_topic, typing_topic
from supportdesk.services import ticket_service


def token_for(profile) -> str:
    return create_session_token(profile.id, profile.role.value)


@pytest.fixture
def ticket(db, customer):
    return ticket_service.create_ticket(
        db, customer_id=customer.id, subject="Refund", content="Where is my refund?"
    )


@pytest.fixture
def test_client(override_app):
    with TestClient(app) as tc:
        yield tc


def _connect(tc, ticket, profile):
    return tc.websocket_connect(f"/ws/tickets/{ticket.id}?token={token_for(profile)}")


def _ping(ws):
    ws.send_text("ping")
    assert ws.receive_json() == {"type": "pong"}


def test_ping_pong(test_client, ticket, customer):
    with _connect(test_client, ticket, customer) as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        _ping(ws)


def test_typing_reaches_other_viewers_but_not_sender(test_client, ticket, customer, admin):
    with _connect(test_client, ticket, customer) as customer_ws, _connect(
        test_client, ticket, admin
    ) as admin_ws:
        _ping(customer_ws)
        _ping(admin_ws)

        customer_ws.send_json({"type": "typing", "data": {"sender_id": "spoofed"}})

        event = admin_ws.receive_json()
        assert event["type"] == TYPING
        assert event["topic"] == typing_topic(ticket.id)
        assert event["data"] == {"ticket_id": str(ticket.id), "sender_id": str(customer.id)}

        # The next frame the sender sees is its own pong, not the echo.
        _ping(customer_ws)


def test_message_post_is_pushed_to_socket(test_client, ticket, customer, admin):
    with _connect(test_client, ticket, customer) as ws:
        _ping(ws)

        response = test_client.post(
            f"/tickets/{ticket.id}/messages",
            json={"content": "Refund issued"},
            headers={"Authorization": f"Bearer {token_for(admin)}"},
        )
        assert response.status_code == 201

        event = ws.receive_json()
        assert event["type"] == MESSAGE_INSERTED
        assert event["topic"] == ticket_topic(ticket.id)
        assert event["data"]["id"] == response.json()["id"]
        assert event["data"]["content"] == "Refund issued"


def test_socket_requires_authentication(test_client, ticket):
    with pytest.raises(WebSocketDisconnect) as exc:
        with test_client.websocket_connect(f"/ws/tickets/{ticket.id}") as ws:
            ws.receive_text()
    assert exc.value.code == 4001


def test_socket_refuses_other_customers_ticket(test_client, ticket, other_customer):
    with pytest.raises(WebSocketDisconnect) as exc:
        with _connect(test_client, ticket, other_customer) as ws:
            ws.receive_text()
    assert exc.value.code == 4004
