"""
Topic-based pub/sub fanout for realtime messaging.

Two interchangeable backends implement the PubSub contract:
- MemoryPubSub: in-process, single-instance deployments
- RedisPubSub: Redis channels, fan-out across instances
"""

from .base import PubSub, Subscription
from .broadcaster import PubSubBroadcaster
from .config import PubSubSettings
from .events import EventType
from .exceptions import (
    BrokerConnectionError,
    MessageSerializationError,
    PubSubClosedError,
    PubSubError,
    PublishFailedError,
    SubscribeFailedError,
)
from .factory import create_pubsub
from .memory import MemoryPubSub
from .message import DeliveryContext, Handler, Message
from .redis_backend import RedisPubSub
from .topics import Topics

__all__ = [
    "BrokerConnectionError",
    "DeliveryContext",
    "EventType",
    "Handler",
    "MemoryPubSub",
    "Message",
    "MessageSerializationError",
    "PubSub",
    "PubSubBroadcaster",
    "PubSubClosedError",
    "PubSubError",
    "PubSubSettings",
    "PublishFailedError",
    "RedisPubSub",
    "Subscription",
    "SubscribeFailedError",
    "Topics",
    "create_pubsub",
]
