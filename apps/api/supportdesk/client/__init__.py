"""Client-side conversation engine.

Asyncio building blocks a UI shell drives: the change feed subscriber,
typing presence, local read state and the conversation view that merges
fetched history with live events.
"""

from supportdesk.client.api import SupportDeskClient
from supportdesk.client.change_feed import ChangeFeedSubscriber, SubscriptionHandle, SubscriptionState
from supportdesk.client.conversation import ConversationView
from supportdesk.client.kv_store import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore
from supportdesk.client.presence import PresenceChannel
from supportdesk.client.read_state import ReadStateTracker
from supportdesk.client.transport import HubTransport, RealtimeTransport

__all__ = [
    "ChangeFeedSubscriber",
    "ConversationView",
    "HubTransport",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "PresenceChannel",
    "ReadStateTracker",
    "RealtimeTransport",
    "SubscriptionHandle",
    "SubscriptionState",
    "SupportDeskClient",
]
