"""
Publish/subscribe contract shared by every backend.

Producers and the connection gateway are written against PubSub only;
the concrete backend is chosen once at construction (see factory.py).
All implementations must be safe for concurrent use from many tasks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import ClassVar, Optional, Type

from .message import Handler, Message


class Subscription(ABC):
    """An active registration of one handler on one topic."""

    def __init__(self, topic: str, handler: Handler, id: int) -> None:
        self.topic = topic
        self.handler = handler
        self.id = id

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Remove the subscription. Idempotent; a no-op once the backend is closed."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} topic={self.topic!r}>"


class PubSub(ABC):
    """Topic-based fanout of messages to registered handlers."""

    name: ClassVar[str]

    @abstractmethod
    async def publish(
        self,
        topic: str,
        message: Message,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Send a message to every handler currently subscribed to `topic`.

        Publishing to a topic without subscribers succeeds silently.
        `timeout` bounds this call only, never handler execution.

        Raises:
            PubSubClosedError: backend was closed
            PublishFailedError: broker rejected or failed the publish
            MessageSerializationError: message cannot be encoded
        """

    @abstractmethod
    async def subscribe(
        self,
        topic: str,
        handler: Handler,
        *,
        timeout: Optional[float] = None,
    ) -> Subscription:
        """
        Register `handler` for messages published to `topic`.

        Raises:
            PubSubClosedError: backend was closed
            SubscribeFailedError: broker subscription could not be confirmed
        """

    @abstractmethod
    async def close(self) -> None:
        """Shut down and release every resource. Idempotent."""

    @property
    @abstractmethod
    def closed(self) -> bool: ...

    @abstractmethod
    def subscriber_count(self, topic: str) -> int:
        """Number of subscriptions for `topic` held by this instance."""

    @abstractmethod
    def topic_count(self) -> int:
        """Number of topics with at least one local subscription."""

    async def __aenter__(self) -> "PubSub":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()


__all__ = ["PubSub", "Subscription"]
