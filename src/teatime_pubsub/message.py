"""
Message value type and wire envelope.

Wire format (UTF-8 JSON):
{
    "topic": str,     # Channel the message was published on
    "type": str,      # Application event kind, dispatch key for payload
    "payload": Any    # Raw JSON value carried verbatim
}

Payload bytes are embedded as raw JSON, so they must hold valid JSON
(NaN and Infinity are rejected).
An empty payload is encoded as null and decodes back to b"".
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import json
import math
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict

from .exceptions import MessageSerializationError


@dataclass(frozen=True)
class Message:
    """A published event. Immutable; equal when contents are equal."""

    topic: str
    type: str
    payload: bytes = b""

    @classmethod
    def from_data(cls, topic: str, type: str, data: Any) -> "Message":
        """Build a message whose payload is `data` encoded as JSON."""
        try:
            payload = json.dumps(data, separators=(",", ":"), allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise MessageSerializationError(
                f"payload for {type!r} is not JSON serializable: {exc}",
                details={"topic": topic, "type": type},
            ) from exc
        return cls(topic=topic, type=type, payload=payload)

    def json(self) -> Any:
        """Decode the payload as JSON (None when empty)."""
        if not self.payload:
            return None
        return json.loads(self.payload)


class WireEnvelope(BaseModel):
    """JSON envelope carried over the broker."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    topic: str
    type: str
    payload: Any = None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name} is not valid JSON")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number {text} is out of range")
    return value


def encode_message(message: Message) -> bytes:
    """Encode a message into its wire envelope."""
    payload: Any = None
    if message.payload:
        try:
            payload = json.loads(
                message.payload, parse_constant=_reject_constant, parse_float=_finite_float
            )
        except ValueError as exc:
            raise MessageSerializationError(
                f"payload for {message.type!r} is not valid JSON: {exc}",
                details={"topic": message.topic, "type": message.type},
            ) from exc
    envelope = WireEnvelope(topic=message.topic, type=message.type, payload=payload)
    return envelope.model_dump_json().encode("utf-8")


def decode_message(raw: bytes | str) -> Message:
    """
    Decode a wire envelope.

    Raises:
        ValueError: frame is not a well-formed envelope (pydantic's
            ValidationError is a ValueError subclass)
    """
    envelope = WireEnvelope.model_validate_json(raw)
    payload = b""
    if envelope.payload is not None:
        encoded = json.dumps(envelope.payload, separators=(",", ":"), allow_nan=False)
        payload = encoded.encode("utf-8")
    return Message(topic=envelope.topic, type=envelope.type, payload=payload)


@dataclass(frozen=True)
class DeliveryContext:
    """
    Execution context handed to handlers alongside each message.

    `cancelled` flips once the subscription is cancelled or its backend
    closes. It is independent of the publisher's own cancellation.
    """

    topic: str
    subscription_id: int
    backend: str
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    async def wait_cancelled(self) -> None:
        await self.cancel_event.wait()


Handler = Callable[[DeliveryContext, Message], Awaitable[None]]


__all__ = [
    "DeliveryContext",
    "Handler",
    "Message",
    "WireEnvelope",
    "decode_message",
    "encode_message",
]
