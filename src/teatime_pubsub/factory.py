"""
Construction-time backend selection.

Call create_pubsub() during application startup (lifespan manager) and
close() the result on shutdown. Callers only see the PubSub contract.
"""

from __future__ import annotations

import logging
from typing import Optional

from .base import PubSub
from .config import PubSubSettings
from .memory import MemoryPubSub
from .redis_backend import RedisPubSub


async def create_pubsub(
    settings: Optional[PubSubSettings] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> PubSub:
    """
    Build the backend named by `settings.backend`.

    Args:
        settings: Settings to use (loaded from environment when omitted)
        logger: Diagnostic sink handed to the backend

    Raises:
        BrokerConnectionError: Redis backend selected but unreachable
        ValueError: unknown backend name
    """
    settings = settings or PubSubSettings()
    log = logger or logging.getLogger(__name__)

    if settings.backend == "memory":
        log.info("[PUBSUB] Using in-memory backend")
        return MemoryPubSub(
            queue_size=settings.queue_size,
            overflow_policy=settings.overflow_policy,
            logger=logger,
        )
    if settings.backend == "redis":
        log.info("[PUBSUB] Using Redis backend")
        return await RedisPubSub.connect(
            settings.redis_url,
            socket_connect_timeout=settings.socket_connect_timeout,
            queue_size=settings.queue_size,
            overflow_policy=settings.overflow_policy,
            subscribe_timeout=settings.subscribe_timeout,
            publish_timeout=settings.publish_timeout,
            logger=logger,
        )
    raise ValueError(f"unknown pubsub backend: {settings.backend!r}")


__all__ = ["create_pubsub"]
