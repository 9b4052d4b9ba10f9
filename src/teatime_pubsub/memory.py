"""
In-process pub/sub backend for single-instance deployments.

Design decisions:
- Registry maps topic -> {subscription id -> subscription}
- One lock linearizes Subscribe/Unsubscribe/Close; critical sections never await
- Publish snapshots the topic's subscriptions under the lock and delivers
  after releasing it, so subscriber code never runs while the lock is held
- Empty topics are removed so the registry tracks active topics only
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Dict, List, Optional

from .base import PubSub, Subscription
from .config import OverflowPolicy
from .dispatch import DeliveryQueue
from .exceptions import PubSubClosedError
from .message import DeliveryContext, Handler, Message
from .metrics import (
    pubsub_active_subscriptions,
    pubsub_no_subscribers_total,
    pubsub_published_total,
)


class MemorySubscription(Subscription):
    """Subscription held by a MemoryPubSub."""

    def __init__(
        self,
        pubsub: "MemoryPubSub",
        topic: str,
        handler: Handler,
        id: int,
        queue: DeliveryQueue,
    ) -> None:
        super().__init__(topic, handler, id)
        self._pubsub = pubsub
        self._queue = queue

    async def unsubscribe(self) -> None:
        await self._pubsub._unsubscribe(self)


class MemoryPubSub(PubSub):
    """PubSub backed by an in-memory registry."""

    name = "memory"

    def __init__(
        self,
        *,
        queue_size: int = 256,
        overflow_policy: OverflowPolicy = "drop_oldest",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, Dict[int, MemorySubscription]] = {}
        self._next_id = 0
        self._closed = False
        self._queue_size = queue_size
        self._overflow_policy = overflow_policy
        self._logger = logger or logging.getLogger(__name__)

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
        # timeout is accepted for contract compatibility; nothing here blocks
        with self._lock:
            if self._closed:
                raise PubSubClosedError()
            subs = self._subscribers.get(topic)
            targets: List[MemorySubscription] = list(subs.values()) if subs else []
            all_topics = list(self._subscribers) if not targets else []

        if not targets:
            pubsub_no_subscribers_total.labels(backend=self.name).inc()
            self._logger.warning(
                "[PUBSUB] No subscribers for topic",
                extra={"topic": topic, "msg_type": message.type, "all_topics": all_topics},
            )
            return

        pubsub_published_total.labels(backend=self.name).inc()
        self._logger.debug(
            "[PUBSUB] Publishing to topic",
            extra={"topic": topic, "msg_type": message.type, "subscriber_count": len(targets)},
        )
        for sub in targets:
            sub._queue.offer(message)

    async def subscribe(
        self,
        topic: str,
        handler: Handler,
        *,
        timeout: Optional[float] = None,
    ) -> MemorySubscription:
        with self._lock:
            if self._closed:
                raise PubSubClosedError()

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
            sub = MemorySubscription(self, topic, handler, sub_id, queue)
            self._subscribers.setdefault(topic, {})[sub_id] = sub
            queue.start()

        pubsub_active_subscriptions.labels(backend=self.name).inc()
        self._logger.debug(
            "[PUBSUB] Subscribed to topic",
            extra={"topic": topic, "subscription_id": sub_id},
        )
        return sub

    async def _unsubscribe(self, sub: MemorySubscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.topic)
            removed = subs is not None and subs.pop(sub.id, None) is not None
            if subs is not None and not subs:
                del self._subscribers[sub.topic]

        if removed:
            pubsub_active_subscriptions.labels(backend=self.name).dec()
            self._logger.debug(
                "[PUBSUB] Unsubscribed from topic",
                extra={"topic": sub.topic, "subscription_id": sub.id},
            )
        await sub._queue.stop()

    async def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            registry, self._subscribers = self._subscribers, {}

        subs = [sub for topic_subs in registry.values() for sub in topic_subs.values()]
        if subs:
            pubsub_active_subscriptions.labels(backend=self.name).dec(len(subs))
            await asyncio.gather(*(sub._queue.stop() for sub in subs))
        self._logger.info("[PUBSUB] In-memory pubsub closed")

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, {}))

    def topic_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


__all__ = ["MemoryPubSub", "MemorySubscription"]
