"""
Realtime event types and message builders.

Every builder returns a Message addressed to the canonical topic for the
event, with a JSON payload. Clients dispatch on `type` to interpret
`payload`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from . import topics
from .message import Message
from .topics import EntityId


class EventType(str, Enum):
    """Server -> client realtime event types."""

    MESSAGE_NEW = "message.new"
    MESSAGE_DELETED = "message.deleted"
    TYPING = "typing"
    RECEIPT_UPDATED = "receipt.updated"
    MEMBER_JOINED = "room.member_joined"
    MEMBER_LEFT = "room.member_left"
    ROOM_UPDATED = "room.updated"
    PRESENCE = "presence"


class ReceiptStatus(str, Enum):
    DELIVERED = "delivered"
    READ = "read"


def build_message(topic: str, event_type: EventType | str, payload: Dict[str, Any]) -> Message:
    """
    Build a message for any topic.

    Args:
        topic: Destination topic
        event_type: Event type (enum member or raw string)
        payload: JSON-serializable event data

    Raises:
        MessageSerializationError: payload cannot be encoded as JSON
    """
    type_value = event_type.value if isinstance(event_type, EventType) else event_type
    return Message.from_data(topic, type_value, payload)


def _iso(value: Optional[datetime]) -> str:
    return (value or datetime.now(timezone.utc)).isoformat()


def build_message_new_event(
    message_id: EntityId,
    conversation_id: EntityId,
    sender_id: EntityId,
    sender_username: str,
    body_text: str,
    created_at: datetime,
    attachment: Optional[Dict[str, Any]] = None,
    temp_id: Optional[str] = None,
) -> Message:
    """Build a message.new event for a room."""
    payload: Dict[str, Any] = {
        "id": str(message_id),
        "conversation_id": str(conversation_id),
        "sender_id": str(sender_id),
        "sender_username": sender_username,
        "body_text": body_text,
        "created_at": created_at.isoformat(),
    }
    if attachment:
        payload["attachment_id"] = str(attachment.get("id"))
        payload["attachment"] = attachment
    if temp_id:
        # Echoed back so the sender can reconcile its optimistic copy
        payload["temp_id"] = temp_id
    return build_message(topics.room(conversation_id), EventType.MESSAGE_NEW, payload)


def build_message_deleted_event(
    message_id: EntityId,
    conversation_id: EntityId,
    deleted_by: EntityId,
) -> Message:
    return build_message(
        topics.room(conversation_id),
        EventType.MESSAGE_DELETED,
        {
            "message_id": str(message_id),
            "conversation_id": str(conversation_id),
            "deleted_by": str(deleted_by),
        },
    )


def build_typing_event(
    conversation_id: EntityId,
    user_id: EntityId,
    username: str,
    is_typing: bool = True,
) -> Message:
    return build_message(
        topics.room(conversation_id),
        EventType.TYPING,
        {
            "conversation_id": str(conversation_id),
            "user_id": str(user_id),
            "username": username,
            "is_typing": is_typing,
        },
    )


def build_receipt_updated_event(
    conversation_id: EntityId,
    message_ids: List[EntityId],
    user_id: EntityId,
    status: ReceiptStatus | str,
    timestamp: Optional[datetime] = None,
) -> Message:
    """Build a receipt.updated event; a single id is sent as `message_id`."""
    payload: Dict[str, Any] = {
        "conversation_id": str(conversation_id),
        "user_id": str(user_id),
        "status": status.value if isinstance(status, ReceiptStatus) else status,
        "timestamp": _iso(timestamp),
    }
    if len(message_ids) == 1:
        payload["message_id"] = str(message_ids[0])
    else:
        payload["message_ids"] = [str(mid) for mid in message_ids]
    return build_message(topics.room(conversation_id), EventType.RECEIPT_UPDATED, payload)


def build_member_joined_event(
    conversation_id: EntityId,
    user_id: EntityId,
    username: str,
    role: str,
    added_by: EntityId,
) -> Message:
    return build_message(
        topics.room(conversation_id),
        EventType.MEMBER_JOINED,
        {
            "conversation_id": str(conversation_id),
            "user_id": str(user_id),
            "username": username,
            "role": role,
            "added_by": str(added_by),
        },
    )


def build_member_left_event(
    conversation_id: EntityId,
    user_id: EntityId,
    username: str,
    removed_by: EntityId,
) -> Message:
    """Build a room.member_left event (removed_by == user_id when self-left)."""
    return build_message(
        topics.room(conversation_id),
        EventType.MEMBER_LEFT,
        {
            "conversation_id": str(conversation_id),
            "user_id": str(user_id),
            "username": username,
            "removed_by": str(removed_by),
        },
    )


def build_room_updated_event(
    conversation_id: EntityId,
    updated_by: EntityId,
    title: Optional[str] = None,
) -> Message:
    payload: Dict[str, Any] = {
        "conversation_id": str(conversation_id),
        "updated_by": str(updated_by),
    }
    if title:
        payload["title"] = title
    return build_message(topics.room(conversation_id), EventType.ROOM_UPDATED, payload)


def build_presence_event(user_id: EntityId, username: str, online: bool) -> Message:
    return build_message(
        topics.presence(),
        EventType.PRESENCE,
        {"user_id": str(user_id), "username": username, "online": online},
    )


__all__ = [
    "EventType",
    "ReceiptStatus",
    "build_member_joined_event",
    "build_member_left_event",
    "build_message",
    "build_message_deleted_event",
    "build_message_new_event",
    "build_presence_event",
    "build_receipt_updated_event",
    "build_room_updated_event",
    "build_typing_event",
]
