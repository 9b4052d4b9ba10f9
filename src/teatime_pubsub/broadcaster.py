"""
High-level publishing for realtime chat events.

API handlers broadcast through PubSubBroadcaster instead of touching the
WebSocket layer; it depends only on the PubSub contract, so the same code
runs on the in-memory and Redis backends.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from . import events, topics
from .base import PubSub
from .events import EventType, ReceiptStatus
from .message import Message
from .topics import EntityId

logger = logging.getLogger(__name__)


class PubSubBroadcaster:
    """Publishes typed room, user and presence events."""

    def __init__(self, pubsub: PubSub, *, timeout: Optional[float] = None) -> None:
        self.pubsub = pubsub
        self.timeout = timeout

    async def publish(self, message: Message) -> None:
        """Publish a prebuilt message to its own topic."""
        await self.pubsub.publish(message.topic, message, timeout=self.timeout)
        logger.debug(f"[BROADCAST] Published {message.type} to {message.topic}")

    async def to_room(
        self, room_id: EntityId, event_type: EventType | str, payload: Dict[str, Any]
    ) -> None:
        await self.publish(events.build_message(topics.room(room_id), event_type, payload))

    async def to_user(
        self, user_id: EntityId, event_type: EventType | str, payload: Dict[str, Any]
    ) -> None:
        """Send to every connection of one user, on any instance."""
        await self.publish(events.build_message(topics.user(user_id), event_type, payload))

    async def to_users(
        self, user_ids: List[EntityId], event_type: EventType | str, payload: Dict[str, Any]
    ) -> None:
        for user_id in user_ids:
            await self.to_user(user_id, event_type, payload)

    async def message_new(
        self,
        message_id: EntityId,
        conversation_id: EntityId,
        sender_id: EntityId,
        sender_username: str,
        body_text: str,
        created_at: datetime,
        attachment: Optional[Dict[str, Any]] = None,
        temp_id: Optional[str] = None,
    ) -> None:
        await self.publish(
            events.build_message_new_event(
                message_id,
                conversation_id,
                sender_id,
                sender_username,
                body_text,
                created_at,
                attachment=attachment,
                temp_id=temp_id,
            )
        )

    async def message_deleted(
        self, message_id: EntityId, conversation_id: EntityId, deleted_by: EntityId
    ) -> None:
        await self.publish(
            events.build_message_deleted_event(message_id, conversation_id, deleted_by)
        )

    async def typing(
        self,
        conversation_id: EntityId,
        user_id: EntityId,
        username: str,
        is_typing: bool = True,
    ) -> None:
        await self.publish(
            events.build_typing_event(conversation_id, user_id, username, is_typing)
        )

    async def receipt_updated(
        self,
        conversation_id: EntityId,
        message_ids: List[EntityId],
        user_id: EntityId,
        status: ReceiptStatus | str,
        timestamp: Optional[datetime] = None,
    ) -> None:
        if not message_ids:
            return
        await self.publish(
            events.build_receipt_updated_event(
                conversation_id, message_ids, user_id, status, timestamp
            )
        )

    async def member_joined(
        self,
        conversation_id: EntityId,
        user_id: EntityId,
        username: str,
        role: str,
        added_by: EntityId,
    ) -> None:
        await self.publish(
            events.build_member_joined_event(conversation_id, user_id, username, role, added_by)
        )

    async def member_left(
        self,
        conversation_id: EntityId,
        user_id: EntityId,
        username: str,
        removed_by: EntityId,
    ) -> None:
        await self.publish(
            events.build_member_left_event(conversation_id, user_id, username, removed_by)
        )

    async def room_updated(
        self,
        conversation_id: EntityId,
        updated_by: EntityId,
        title: Optional[str] = None,
    ) -> None:
        await self.publish(events.build_room_updated_event(conversation_id, updated_by, title))

    async def presence(self, user_id: EntityId, username: str, online: bool) -> None:
        await self.publish(events.build_presence_event(user_id, username, online))


__all__ = ["PubSubBroadcaster"]
