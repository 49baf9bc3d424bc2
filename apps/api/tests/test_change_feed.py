"""Change feed subscriber over the in-process transport."""

import asyncio
from datetime import datetime, timezone
import uuid

import pytest

from supportdesk.client.change_feed import ChangeFeedSubscriber, SubscriptionState
from supportdesk.client.transport import HubTransport
from supportdesk.core.errors import ChannelDisruptionError
from supportdesk.core.websocket import ConnectionManager
from supportdesk.schemas.ticketing import MessageRead, TicketRead
from supportdesk.services.change_feed_service import publish_message_inserted, publish_ticket_updated

TICKET_ID = uuid.uuid4()
SENDER_ID = uuid.uuid4()


def _message(content: str, ticket_id=TICKET_ID) -> MessageRead:
    return MessageRead(
        id=uuid.uuid4(),
        ticket_id=ticket_id,
        sender_id=SENDER_ID,
        content=content,
        attachments=[],
        is_internal=False,
        created_at=datetime.now(timezone.utc),
    )


def _ticket(status="open") -> TicketRead:
    now = datetime.now(timezone.utc)
    return TicketRead(
        id=TICKET_ID,
        customer_id=SENDER_ID,
        subject="Login loop",
        status=status,
        priority="medium",
        sentiment=None,
        created_at=now,
        updated_at=now,
    )


class FlakyTransport(HubTransport):
    """Refuses to connect while ``down`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.down = False
        self.attempts = 0

    async def connect(self):
        self.attempts += 1
        if self.down:
            raise ConnectionError("network unreachable")
        await super().connect()


@pytest.fixture
def hub():
    return ConnectionManager(instance_id="feed-test")


@pytest.fixture
def transport(hub):
    return FlakyTransport(hub, user_id=uuid.uuid4())


@pytest.fixture
async def feed(transport):
    subscriber = ChangeFeedSubscriber(transport, max_reconnect_attempts=3, reconnect_delay=0.01)
    yield subscriber
    await subscriber.close()


@pytest.mark.asyncio
async def test_subscribe_returns_handle_before_it_is_live(feed):
    handle = feed.subscribe(TICKET_ID, lambda m: None)

    assert handle.state == SubscriptionState.PENDING
    await handle.ready(timeout=1)
    assert handle.active


@pytest.mark.asyncio
async def test_inserts_delivered_in_commit_order(feed, hub):
    received = []
    handle = feed.subscribe(TICKET_ID, lambda m: received.append(m.content))
    await handle.ready(timeout=1)

    for content in ("one", "two", "three"):
        await publish_message_inserted(_message(content), connections=hub)
    await publish_message_inserted(_message("elsewhere", ticket_id=uuid.uuid4()), connections=hub)

    assert received == ["one", "two", "three"]


@pytest.mark.asyncio
async def test_ticket_updates_delivered(feed, hub):
    updates = []

    async def on_update(ticket):
        updates.append(ticket.status.value)

    handle = feed.subscribe(TICKET_ID, lambda m: None, on_ticket_update=on_update)
    await handle.ready(timeout=1)

    await publish_ticket_updated(_ticket("closed"), connections=hub)

    assert updates == ["closed"]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery_and_is_idempotent(feed, hub):
    received = []
    handle = feed.subscribe(TICKET_ID, lambda m: received.append(m))
    await handle.ready(timeout=1)

    await feed.unsubscribe(handle)
    await feed.unsubscribe(handle)
    await publish_message_inserted(_message("late"), connections=hub)

    assert received == []
    assert handle.state == SubscriptionState.CLOSED
    assert hub.get_total_connections() == 0


@pytest.mark.asyncio
async def test_unsubscribe_while_subscribe_in_flight(feed, hub):
    received = []
    handle = feed.subscribe(TICKET_ID, lambda m: received.append(m))

    await feed.unsubscribe(handle)
    await asyncio.sleep(0.05)
    await publish_message_inserted(_message("ghost"), connections=hub)

    assert received == []
    assert hub.get_total_connections() == 0


@pytest.mark.asyncio
async def test_drop_then_reconnect_refetches(feed, hub, transport):
    received = []
    reconnected = asyncio.Event()
    handle = feed.subscribe(
        TICKET_ID, lambda m: received.append(m.content), on_reconnect=reconnected.set
    )
    await handle.ready(timeout=1)

    await transport.drop()
    assert handle.state == SubscriptionState.RECONNECTING
    await publish_message_inserted(_message("missed"), connections=hub)

    await asyncio.wait_for(reconnected.wait(), timeout=1)
    assert handle.active
    await publish_message_inserted(_message("after"), connections=hub)

    assert received == ["after"]


@pytest.mark.asyncio
async def test_retries_exhausted_marks_failed(feed, transport):
    errors = []
    handle = feed.subscribe(TICKET_ID, lambda m: None, on_error=errors.append)
    await handle.ready(timeout=1)

    transport.down = True
    await transport.drop()

    with pytest.raises(ChannelDisruptionError):
        await handle.ready(timeout=1)
    assert handle.state == SubscriptionState.FAILED
    assert len(errors) == 1
    assert isinstance(errors[0], ChannelDisruptionError)
    assert transport.attempts >= 1 + feed.max_reconnect_attempts


@pytest.mark.asyncio
async def test_retry_after_failure_recovers(feed, transport, hub):
    received = []
    reconnected = asyncio.Event()
    handle = feed.subscribe(
        TICKET_ID, lambda m: received.append(m.content), on_reconnect=reconnected.set
    )
    await handle.ready(timeout=1)
    transport.down = True
    await transport.drop()
    with pytest.raises(ChannelDisruptionError):
        await handle.ready(timeout=1)

    transport.down = False
    task = feed.retry()
    assert task is not None
    await asyncio.wait_for(task, timeout=1)

    assert reconnected.is_set()
    assert handle.active
    await publish_message_inserted(_message("back"), connections=hub)
    assert received == ["back"]


@pytest.mark.asyncio
async def test_retry_without_failures_is_noop(feed):
    handle = feed.subscribe(TICKET_ID, lambda m: None)
    await handle.ready(timeout=1)

    assert feed.retry() is None


@pytest.mark.asyncio
async def test_consumer_exception_does_not_break_delivery(feed, hub):
    received = []

    def on_insert(message):
        if message.content == "bad":
            raise RuntimeError("consumer bug")
        received.append(message.content)

    handle = feed.subscribe(TICKET_ID, on_insert)
    await handle.ready(timeout=1)

    await publish_message_inserted(_message("bad"), connections=hub)
    await publish_message_inserted(_message("good"), connections=hub)

    assert received == ["good"]
    assert handle.active


@pytest.mark.asyncio
async def test_subscribe_after_close_raises(transport):
    feed = ChangeFeedSubscriber(transport)
    await feed.close()

    with pytest.raises(ChannelDisruptionError):
        feed.subscribe(TICKET_ID, lambda m: None)
