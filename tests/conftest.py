"""
Shared fixtures.

The Redis backend is exercised against an in-process broker stub that
mimics the slice of the redis.asyncio surface it uses. Several clients can
share one broker to model separate application instances.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError


class _BrokerStub:
    def __init__(self) -> None:
        self.channels: Dict[str, Set["_ChannelStub"]] = defaultdict(set)

    def deliver(self, channel: str, data: Any) -> int:
        receivers = list(self.channels.get(channel, ()))
        for receiver in receivers:
            receiver.inbox.put_nowait(
                {"type": "message", "pattern": None, "channel": channel.encode(), "data": data}
            )
        return len(receivers)


class _ChannelStub:
    """Stand-in for redis.asyncio.client.PubSub."""

    def __init__(self, broker: _BrokerStub, subscribe_error: Optional[BaseException] = None) -> None:
        self.broker = broker
        self.subscribe_error = subscribe_error
        self.inbox: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
        self.topics: Set[str] = set()
        self.closed = False
        self.confirm = True

    async def subscribe(self, *names: str) -> None:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        for name in names:
            self.broker.channels[name].add(self)
            self.topics.add(name)
            if self.confirm:
                self.inbox.put_nowait(
                    {"type": "subscribe", "pattern": None, "channel": name.encode(), "data": 1}
                )

    async def unsubscribe(self, *names: str) -> None:
        for name in names or tuple(self.topics):
            self.broker.channels[name].discard(self)
            self.topics.discard(name)

    async def get_message(
        self, ignore_subscribe_messages: bool = False, timeout: Optional[float] = 0.0
    ) -> Optional[Dict[str, Any]]:
        if timeout is None:
            return await self.inbox.get()
        try:
            return await asyncio.wait_for(self.inbox.get(), timeout)
        except asyncio.TimeoutError:
            return None

    async def listen(self) -> AsyncIterator[Dict[str, Any]]:
        while not self.closed:
            item = await self.inbox.get()
            if isinstance(item, BaseException):
                raise item
            yield item

    def fail(self, error: BaseException) -> None:
        """Make the next read from listen() raise `error`."""
        self.inbox.put_nowait(error)

    async def aclose(self) -> None:
        await self.unsubscribe()
        self.closed = True


class RedisStub:
    """Stand-in for redis.asyncio.Redis bound to a shared broker."""

    def __init__(self, broker: _BrokerStub) -> None:
        self.broker = broker
        self.ping_error: Optional[BaseException] = None
        self.publish_error: Optional[BaseException] = None
        self.subscribe_error: Optional[BaseException] = None
        self.confirm_subscriptions = True
        self.channels: List[_ChannelStub] = []
        self.published: List[tuple[str, Any]] = []
        self.closed = False

    async def ping(self) -> bool:
        if self.ping_error is not None:
            raise self.ping_error
        return True

    async def publish(self, channel: str, data: Any) -> int:
        if self.closed:
            raise RedisConnectionError("Connection closed by server.")
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((channel, data))
        return self.broker.deliver(channel, data)

    def pubsub(self) -> _ChannelStub:
        channel = _ChannelStub(self.broker, self.subscribe_error)
        channel.confirm = self.confirm_subscriptions
        self.channels.append(channel)
        return channel

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def broker() -> _BrokerStub:
    return _BrokerStub()


@pytest.fixture
def redis_stub_factory(broker: _BrokerStub) -> Callable[[], RedisStub]:
    """Create clients that all talk to the same broker."""

    def _make() -> RedisStub:
        return RedisStub(broker)

    return _make


@pytest.fixture
def eventually() -> Callable[..., Any]:
    """Poll a predicate until it holds or the timeout expires."""

    async def _eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if predicate():
                return True
            await asyncio.sleep(0.005)
        return predicate()

    return _eventually
