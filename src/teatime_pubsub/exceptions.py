"""
Pub/sub exceptions.

Three families are raised to callers:
- lifecycle: the backend was closed (PubSubClosedError)
- transport: the broker could not be reached or refused the operation
- serialization: an outbound message cannot be encoded

Malformed inbound frames are never raised; backends log and drop them.
"""

from typing import Any, Dict, Optional


class PubSubError(Exception):
    """Base exception for all pub/sub errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class PubSubClosedError(PubSubError):
    """Raised when publish/subscribe is attempted after close()."""

    def __init__(self, message: str = "pubsub: closed", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class BrokerConnectionError(PubSubError):
    """Raised when the broker cannot be reached at construction time."""


class SubscribeFailedError(PubSubError):
    """Raised when a broker-level subscription could not be established."""


class PublishFailedError(PubSubError):
    """Raised when the broker rejected or failed a publish."""


class MessageSerializationError(PubSubError):
    """Raised when an outbound message cannot be encoded to the wire format."""


__all__ = [
    "BrokerConnectionError",
    "MessageSerializationError",
    "PubSubClosedError",
    "PubSubError",
    "PublishFailedError",
    "SubscribeFailedError",
]
