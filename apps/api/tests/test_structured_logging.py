"""Tests for structured logging helpers."""

from supportdesk.core.structured_logging import build_log_context


def test_build_log_context_includes_only_provided_fields():
    context = build_log_context(
        user_id="user-1",
        ticket_id="ticket-1",
        message_id="message-1",
        topic="ticket:ticket-1",
        request_id="req-1",
    )

    assert context == {
        "user_id": "user-1",
        "ticket_id": "ticket-1",
        "message_id": "message-1",
        "topic": "ticket:ticket-1",
        "request_id": "req-1",
    }


def test_build_log_context_ignores_empty_fields():
    context = build_log_context(
        user_id="",
        ticket_id=None,
        request_id="req-1",
    )

    assert context == {"request_id": "req-1"}
