"""Canonical topic names. The core treats topics as opaque strings."""

from typing import Union
from uuid import UUID

EntityId = Union[str, int, UUID]

PRESENCE_TOPIC = "presence"


def room(room_id: EntityId) -> str:
    """Topic for a conversation/room."""
    return f"room:{room_id}"


def user(user_id: EntityId) -> str:
    """Topic for user-specific events."""
    return f"user:{user_id}"


def presence() -> str:
    return PRESENCE_TOPIC


def call(room_id: EntityId) -> str:
    """Topic for a call room."""
    return f"call:{room_id}"


class Topics:
    """Namespace access, e.g. ``Topics.room(conversation_id)``."""

    room = staticmethod(room)
    user = staticmethod(user)
    presence = staticmethod(presence)
    call = staticmethod(call)


__all__ = ["PRESENCE_TOPIC", "Topics", "call", "presence", "room", "user"]
