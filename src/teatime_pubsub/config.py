"""Configuration for the pub/sub fanout layer."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BackendName = Literal["memory", "redis"]
OverflowPolicy = Literal["drop_oldest", "drop_newest"]


class PubSubSettings(BaseSettings):
    """Runtime settings loaded from environment (PUBSUB_ prefix)."""

    # "memory" for single-instance deployments, "redis" to fan out across instances
    backend: BackendName = Field(
        default="memory",
        validation_alias=AliasChoices("PUBSUB_BACKEND", "PUBSUB_TYPE"),
    )
    redis_url: str = Field(
        default="redis://localhost:6379",
        validation_alias=AliasChoices("PUBSUB_REDIS_URL", "REDIS_URL"),
    )
    queue_size: int = Field(default=256, ge=1, description="Buffered messages per subscription")
    overflow_policy: OverflowPolicy = "drop_oldest"
    subscribe_timeout: float = Field(default=5.0, gt=0)
    publish_timeout: float = Field(default=5.0, gt=0)
    socket_connect_timeout: float = Field(default=5.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="PUBSUB_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


__all__ = ["BackendName", "OverflowPolicy", "PubSubSettings"]
