"""
Redis-backed pub/sub for horizontally scaled deployments.

Messages published on one instance are received by subscribers on every
instance connected to the same Redis.

Design decisions:
- Async Redis client (non-blocking)
- One Redis PubSub connection and one receive task per subscription
- Subscribe waits for the broker's confirmation before returning, so no
  message published after subscribe() returns can be missed
- Malformed frames are logged and dropped; the receive loop keeps running
- A broker error ends the receive loop and retires the subscription, which
  cancels its delivery context
- Handlers run on the subscription's delivery queue, never on the receive loop
- Broker failures surface as distinct exceptions; zero receivers is not an error
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Optional
from urllib.parse import urlsplit

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from .base import PubSub, Subscription
from .config import OverflowPolicy
from .dispatch import DeliveryQueue
from .exceptions import (
    BrokerConnectionError,
    PubSubClosedError,
    PublishFailedError,
    SubscribeFailedError,
)
from .message import DeliveryContext, Handler, Message, decode_message, encode_message
from .metrics import (
    pubsub_active_subscriptions,
    pubsub_dropped_total,
    pubsub_no_subscribers_total,
    pubsub_published_total,
)

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub as RedisChannel

# Errors raised by the client for broker I/O (connection resets surface as OSError)
BROKER_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisSubscription(Subscription):
    """Subscription bound to its own Redis channel connection."""

    def __init__(
        self,
        pubsub: "RedisPubSub",
        topic: str,
        handler: Handler,
        id: int,
        channel: "RedisChannel",
        queue: DeliveryQueue,
    ) -> None:
        super().__init__(topic, handler, id)
        self._pubsub = pubsub
        self._channel = channel
        self._queue = queue
        self._receiver: Optional[asyncio.Task[None]] = None

    async def unsubscribe(self) -> None:
        await self._pubsub._unsubscribe(self)


class RedisPubSub(PubSub):
    """PubSub routed through Redis channels (one channel per topic)."""

    name = "redis"

    def __init__(
        self,
        client: AsyncRedis,
        *,
        queue_size: int = 256,
        overflow_policy: OverflowPolicy = "drop_oldest",
        subscribe_timeout: Optional[float] = 5.0,
        publish_timeout: Optional[float] = 5.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._client = client
        self._lock = threading.Lock()
        self._subscriptions: Dict[int, RedisSubscription] = {}
        self._next_id = 0
        self._closed = False
        self._queue_size = queue_size
        self._overflow_policy = overflow_policy
        self._subscribe_timeout = subscribe_timeout
        self._publish_timeout = publish_timeout
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    async def connect(
        cls,
        url: str,
        *,
        socket_connect_timeout: Optional[float] = 5.0,
        **kwargs: Any,
    ) -> "RedisPubSub":
        """
        Create a client for `url` and verify it with PING.

        url should look like redis://host:port or redis://:password@host:port.
        A failed connection is reported, not retried.

        Raises:
            BrokerConnectionError: URL is invalid or Redis is unreachable
        """
        host = urlsplit(url).hostname
        try:
            client = AsyncRedis.from_url(url, socket_connect_timeout=socket_connect_timeout)
        except ValueError as exc:
            raise BrokerConnectionError(f"invalid redis URL: {exc}") from exc

        try:
            await client.ping()
        except BROKER_ERRORS as exc:
            await client.aclose()
            raise BrokerConnectionError(
                f"failed to connect to redis: {exc}", details={"host": host}
            ) from exc

        pubsub = cls(client, **kwargs)
        pubsub._logger.info("[REDIS-PUBSUB] Connected to Redis", extra={"host": host})
        return pubsub

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(
        self,
        topic: str,
        message: Message,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        if self._closed:
            raise PubSubClosedError()

        data = encode_message(message)
        wait = timeout if timeout is not None else self._publish_timeout
        try:
            receivers: int = await asyncio.wait_for(self._client.publish(topic, data), timeout=wait)
        except BROKER_ERRORS as exc:
            if self._closed:
                raise PubSubClosedError() from exc
            raise PublishFailedError(
                f"failed to publish to redis: {exc}",
                details={"topic": topic, "msg_type": message.type},
            ) from exc

        pubsub_published_total.labels(backend=self.name).inc()
        if receivers == 0:
            pubsub_no_subscribers_total.labels(backend=self.name).inc()
            self._logger.warning(
                "[REDIS-PUBSUB] No subscribers for topic",
                extra={"topic": topic, "msg_type": message.type},
            )
        else:
            self._logger.debug(
                "[REDIS-PUBSUB] Published to topic",
                extra={"topic": topic, "msg_type": message.type, "subscribers": receivers},
            )

    async def subscribe(
        self,
        topic: str,
        handler: Handler,
        *,
        timeout: Optional[float] = None,
    ) -> RedisSubscription:
        if self._closed:
            raise PubSubClosedError()

        channel = self._client.pubsub()
        wait = timeout if timeout is not None else self._subscribe_timeout
        confirmed = False
        try:
            await asyncio.wait_for(self._confirm_subscription(channel, topic), timeout=wait)
            confirmed = True
        except BROKER_ERRORS as exc:
            if self._closed:
                raise PubSubClosedError() from exc
            raise SubscribeFailedError(
                f"failed to subscribe to redis channel: {exc}", details={"topic": topic}
            ) from exc
        finally:
            if not confirmed:
                await self._release_channel(channel)

        with self._lock:
            if self._closed:
                sub = None
            else:
                self._next_id += 1
                sub_id = self._next_id
                context = DeliveryContext(topic=topic, subscription_id=sub_id, backend=self.name)
                queue = DeliveryQueue(
                    handler,
                    context,
                    maxsize=self._queue_size,
                    overflow_policy=self._overflow_policy,
                    logger=self._logger,
                )
                sub = RedisSubscription(self, topic, handler, sub_id, channel, queue)
                self._subscriptions[sub_id] = sub
                queue.start()
                sub._receiver = asyncio.get_running_loop().create_task(
                    self._receive(sub), name=f"pubsub-receive-{sub_id}"
                )

        if sub is None:
            # close() won the race while the broker round-trip was in flight
            await self._release_channel(channel)
            raise PubSubClosedError()

        pubsub_active_subscriptions.labels(backend=self.name).inc()
        self._logger.debug(
            "[REDIS-PUBSUB] Subscribed to topic",
            extra={"topic": topic, "subscription_id": sub.id},
        )
        return sub

    async def _confirm_subscription(self, channel: "RedisChannel", topic: str) -> None:
        await channel.subscribe(topic)
        while True:
            reply = await channel.get_message(timeout=None)
            if reply is not None and reply.get("type") == "subscribe":
                return

    async def _receive(self, sub: RedisSubscription) -> None:
        """Pull frames for one subscription until cancelled or the channel ends."""
        try:
            async for raw in sub._channel.listen():
                if raw.get("type") != "message":
                    continue
                try:
                    message = decode_message(raw["data"])
                except ValueError as exc:
                    pubsub_dropped_total.labels(backend=self.name, reason="malformed").inc()
                    self._logger.error(
                        f"[REDIS-PUBSUB] Failed to decode message: {exc}",
                        extra={"topic": sub.topic, "subscription_id": sub.id},
                    )
                    continue
                sub._queue.offer(message)
        except BROKER_ERRORS as exc:
            self._logger.error(
                f"[REDIS-PUBSUB] Receive loop stopped on broker error: {exc}",
                extra={"topic": sub.topic, "subscription_id": sub.id},
            )
            await self._retire(sub)

    async def _retire(self, sub: RedisSubscription) -> None:
        """Drop a subscription whose receive loop died; runs on the receive task."""
        with self._lock:
            removed = self._subscriptions.pop(sub.id, None) is not None
        if not removed:
            return

        pubsub_active_subscriptions.labels(backend=self.name).dec()
        try:
            await self._release_channel(sub._channel)
        finally:
            await sub._queue.stop()

    async def _unsubscribe(self, sub: RedisSubscription) -> None:
        with self._lock:
            removed = self._subscriptions.pop(sub.id, None) is not None
        if not removed:
            # Already torn down by an earlier unsubscribe() or by close()
            return

        pubsub_active_subscriptions.labels(backend=self.name).dec()
        await self._teardown(sub)
        self._logger.debug(
            "[REDIS-PUBSUB] Unsubscribed from topic",
            extra={"topic": sub.topic, "subscription_id": sub.id},
        )

    async def _teardown(self, sub: RedisSubscription) -> None:
        receiver = sub._receiver
        if receiver is not None and not receiver.done():
            receiver.cancel()
            try:
                await receiver
            except asyncio.CancelledError:
                pass

        try:
            await sub._channel.unsubscribe(sub.topic)
        except BROKER_ERRORS as exc:
            self._logger.warning(
                f"[REDIS-PUBSUB] Failed to unsubscribe channel cleanly: {exc}",
                extra={"topic": sub.topic, "subscription_id": sub.id},
            )
        finally:
            await self._release_channel(sub._channel)
            await sub._queue.stop()

    async def _release_channel(self, channel: "RedisChannel") -> None:
        try:
            await channel.aclose()
        except BROKER_ERRORS as exc:
            self._logger.warning(f"[REDIS-PUBSUB] Failed to close channel connection: {exc}")

    async def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subs = list(self._subscriptions.values())
            self._subscriptions.clear()

        if subs:
            pubsub_active_subscriptions.labels(backend=self.name).dec(len(subs))
            await asyncio.gather(*(self._teardown(sub) for sub in subs))

        try:
            await self._client.aclose()
        except BROKER_ERRORS as exc:
            raise BrokerConnectionError(f"failed to close redis client: {exc}") from exc
        self._logger.info("[REDIS-PUBSUB] Redis pubsub closed")

    def subscriber_count(self, topic: str) -> int:
        """Local subscribers only; other instances are not counted."""
        with self._lock:
            return sum(1 for sub in self._subscriptions.values() if sub.topic == topic)

    def topic_count(self) -> int:
        with self._lock:
            return len({sub.topic for sub in self._subscriptions.values()})


__all__ = ["BROKER_ERRORS", "RedisPubSub", "RedisSubscription"]
