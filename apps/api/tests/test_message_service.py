"""Message log: append rules, ordering, grouping, merge."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import uuid

import pytest

from supportdesk.core.errors import TicketClosedError, ValidationError
from supportdesk.db.enums import TicketStatus
from supportdesk.db.models import Message
from supportdesk.services import message_service, ticket_service


@pytest.fixture
def ticket(db, customer):
    return ticket_service.create_ticket(
        db, customer_id=customer.id, subject="Printer", content="It is on fire"
    )


def test_append_message_refreshes_ticket_updated_at(db, ticket, admin):
    ticket.updated_at = datetime.now(timezone.utc) - timedelta(days=1)
    db.commit()
    before = ticket.updated_at

    message = message_service.append_message(
        db, ticket=ticket, sender_id=admin.id, content="Please step away from it"
    )

    db.refresh(ticket)
    assert ticket.updated_at > before
    assert ticket.updated_at == message.created_at


def test_append_message_rejects_empty_content(db, ticket, customer):
    with pytest.raises(ValidationError):
        message_service.append_message(db, ticket=ticket, sender_id=customer.id, content="   ")

    assert len(message_service.list_for_ticket(db, ticket_id=ticket.id)) == 1


def test_append_message_refused_on_closed_ticket(db, ticket, customer):
    ticket_service.update_status(db, ticket_id=ticket.id, status=TicketStatus.CLOSED)

    with pytest.raises(TicketClosedError):
        message_service.append_message(db, ticket=ticket, sender_id=customer.id, content="hello?")

    assert db.query(Message).filter(Message.ticket_id == ticket.id).count() == 1


def test_reopened_ticket_accepts_messages_again(db, ticket, customer):
    ticket_service.update_status(db, ticket_id=ticket.id, status=TicketStatus.CLOSED)
    ticket_service.update_status(db, ticket_id=ticket.id, status=TicketStatus.OPEN)

    message = message_service.append_message(
        db, ticket=ticket, sender_id=customer.id, content="It is back"
    )
    assert message.content == "It is back"


def test_attachment_only_message_gets_placeholder_content(db, ticket, customer):
    message = message_service.append_message(
        db,
        ticket=ticket,
        sender_id=customer.id,
        content="",
        attachments=["https://files.test/t/1.png"],
        attachment_filename="screenshot.png",
    )

    assert message.content == "Sent an attachment: screenshot.png"
    assert message.attachments == ["https://files.test/t/1.png"]


def test_list_for_ticket_hides_internal_notes_on_request(db, ticket, admin):
    message_service.append_message(
        db, ticket=ticket, sender_id=admin.id, content="customer is VIP", is_internal=True
    )

    assert len(message_service.list_for_ticket(db, ticket_id=ticket.id)) == 2
    public = message_service.list_for_ticket(db, ticket_id=ticket.id, include_internal=False)
    assert [m.content for m in public] == ["It is on fire"]


def test_list_for_ticket_orders_by_created_at_then_id(db, ticket, customer, admin):
    same_time = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    low_id = uuid.UUID("00000000-0000-0000-0000-000000000001")
    high_id = uuid.UUID("ffffffff-0000-0000-0000-000000000000")
    db.add_all(
        [
            Message(id=high_id, ticket_id=ticket.id, sender_id=admin.id, content="b", created_at=same_time),
            Message(id=low_id, ticket_id=ticket.id, sender_id=customer.id, content="a", created_at=same_time),
        ]
    )
    db.commit()

    messages = message_service.list_for_ticket(db, ticket_id=ticket.id)
    tied = [m for m in messages if m.created_at == same_time]
    assert [m.id for m in tied] == [low_id, high_id]
    assert messages == sorted(messages, key=message_service.message_sort_key)


def test_recent_messages_returns_last_n_chronologically(db, ticket, customer, admin):
    for i in range(12):
        sender = customer.id if i % 2 else admin.id
        message_service.append_message(db, ticket=ticket, sender_id=sender, content=f"m{i}")

    recent = message_service.recent_messages(db, ticket_id=ticket.id, limit=10)

    assert [m.content for m in recent] == [f"m{i}" for i in range(2, 12)]


# =============================================================================
# Grouping and merge (pure)
# =============================================================================

@dataclass
class Msg:
    id: uuid.UUID
    sender_id: uuid.UUID
    created_at: datetime


T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
ALICE = uuid.uuid4()
BOB = uuid.uuid4()


def _msg(sender, seconds) -> Msg:
    return Msg(id=uuid.uuid4(), sender_id=sender, created_at=T0 + timedelta(seconds=seconds))


def test_group_messages_same_sender_within_window():
    a1, a2, b1, a3 = _msg(ALICE, 0), _msg(ALICE, 60), _msg(BOB, 70), _msg(ALICE, 80)

    groups = message_service.group_messages([a1, a2, b1, a3])

    assert groups == [[a1, a2], [b1], [a3]]


def test_group_messages_window_is_strict():
    a1, a2 = _msg(ALICE, 0), _msg(ALICE, 120)
    assert message_service.group_messages([a1, a2]) == [[a1], [a2]]

    a3 = _msg(ALICE, 119)
    assert message_service.group_messages([a1, a3]) == [[a1, a3]]


def test_group_messages_chains_adjacent_pairs():
    # Each gap is under the window even though first-to-last is not.
    chain = [_msg(ALICE, s) for s in (0, 100, 200, 300)]
    assert message_service.group_messages(chain) == [chain]


def test_group_messages_empty():
    assert message_service.group_messages([]) == []


def test_merge_messages_dedupes_and_sorts():
    a, b, c = _msg(ALICE, 0), _msg(BOB, 10), _msg(ALICE, 20)

    merged = message_service.merge_messages([c, a], [b, a, c])

    assert merged == [a, b, c]
