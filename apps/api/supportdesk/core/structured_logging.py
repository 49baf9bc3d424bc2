"""Structured logging helpers (content-safe: ids only, never message text)."""

from typing import Any


def build_log_context(
    *,
    user_id: str | None = None,
    ticket_id: str | None = None,
    message_id: str | None = None,
    topic: str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict holding only the identifiers that were given."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if ticket_id:
        context["ticket_id"] = ticket_id
    if message_id:
        context["message_id"] = message_id
    if topic:
        context["topic"] = topic
    if request_id:
        context["request_id"] = request_id
    return context
