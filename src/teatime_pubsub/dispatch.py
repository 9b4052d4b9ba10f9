"""
Per-subscription delivery queue.

Design decisions:
- One bounded asyncio.Queue and one worker task per subscription
- Messages to one subscriber are delivered in the order they were offered;
  different subscribers are drained concurrently
- At most one in-flight handler invocation per subscription
- Overflow is resolved by policy (drop_oldest / drop_newest), never by
  blocking the publisher or the broker receive loop
- A handler that raises is logged and counted; the worker keeps draining
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Optional

from .config import OverflowPolicy
from .message import DeliveryContext, Handler, Message
from .metrics import pubsub_delivered_total, pubsub_dropped_total, pubsub_handler_errors_total


class DeliveryQueue:
    """Ordered, bounded delivery of messages to a single handler."""

    def __init__(
        self,
        handler: Handler,
        context: DeliveryContext,
        *,
        maxsize: int = 256,
        overflow_policy: OverflowPolicy = "drop_oldest",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._handler = handler
        self.context = context
        self._queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=maxsize)
        self._overflow_policy = overflow_policy
        self._logger = logger or logging.getLogger(__name__)
        self._worker: Optional[asyncio.Task[None]] = None
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def pending(self) -> int:
        """Messages buffered but not yet handed to the handler."""
        return self._queue.qsize()

    def start(self) -> None:
        """Start the worker task on the running event loop."""
        if self._worker is not None or self._stopped:
            return
        self._worker = asyncio.get_running_loop().create_task(
            self._run(),
            name=f"pubsub-delivery-{self.context.backend}-{self.context.subscription_id}",
        )

    def offer(self, message: Message) -> bool:
        """
        Buffer a message for delivery without blocking.

        Returns:
            True if the message was buffered, False if it was discarded
        """
        if self._stopped:
            return False
        try:
            self._queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            pass

        pubsub_dropped_total.labels(backend=self.context.backend, reason="overflow").inc()
        if self._overflow_policy == "drop_newest":
            self._logger.warning(
                "[PUBSUB] Delivery queue full, dropping newest message",
                extra=self._log_extra(message),
            )
            return False

        try:
            evicted = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            evicted = None
        self._queue.put_nowait(message)
        self._logger.warning(
            "[PUBSUB] Delivery queue full, dropped oldest message",
            extra={
                **self._log_extra(message),
                "dropped_type": evicted.type if evicted else None,
            },
        )
        return True

    async def stop(self) -> None:
        """
        Cancel the subscription context and the worker; discard buffered messages.

        Safe to call from inside the handler itself: the worker then exits
        after the current invocation returns.
        """
        if self._stopped:
            return
        self._stopped = True
        self.context.cancel_event.set()

        while not self._queue.empty():
            self._queue.get_nowait()

        worker = self._worker
        if worker is None or worker.done() or worker is asyncio.current_task():
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while not self._stopped:
            message = await self._queue.get()
            await self._deliver(message)

    async def _deliver(self, message: Message) -> None:
        backend = self.context.backend
        try:
            result = self._handler(self.context, message)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            pubsub_handler_errors_total.labels(backend=backend).inc()
            self._logger.exception(
                "[PUBSUB] Handler raised while processing message",
                extra=self._log_extra(message),
            )
        else:
            pubsub_delivered_total.labels(backend=backend).inc()

    def _log_extra(self, message: Message) -> dict[str, object]:
        return {
            "topic": self.context.topic,
            "msg_type": message.type,
            "subscription_id": self.context.subscription_id,
        }


__all__ = ["DeliveryQueue"]
