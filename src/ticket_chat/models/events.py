"""Events carried by the room broadcast channel."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from .message import Message
from .ticket import TicketStatus


class RoomEventType(StrEnum):
    """Event kinds, named as they appear on the wire."""

    NEW_MESSAGE = "newMessage"
    DELIVERED = "delivered"
    MESSAGE_SEEN = "messageSeen"
    TYPING = "typing"
    STOP_TYPING = "stopTyping"
    TICKET_STATUS_CHANGED = "ticketStatusChanged"


@dataclass(frozen=True)
class RoomEvent:
    """A single broadcast event scoped to a room."""

    type: RoomEventType
    room_id: str
    payload: dict[str, Any]
    origin_user_id: str | None = None
    exclude_origin: bool = False  # skip the publisher's own connections
    published_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "roomId": self.room_id,
            "payload": self.payload,
            "origin": self.origin_user_id,
            "excludeOrigin": self.exclude_origin,
            "publishedAt": self.published_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoomEvent:
        return cls(
            type=RoomEventType(data["type"]),
            room_id=data["roomId"],
            payload=dict(data.get("payload", {})),
            origin_user_id=data.get("origin"),
            exclude_origin=bool(data.get("excludeOrigin", False)),
            published_at=datetime.fromisoformat(data["publishedAt"]),
        )


def new_message_event(room_id: str, message: Message) -> RoomEvent:
    return RoomEvent(
        type=RoomEventType.NEW_MESSAGE,
        room_id=room_id,
        payload={"message": message.to_dict()},
        origin_user_id=message.sender_id,
    )


def delivered_event(room_id: str, message_id: str, user_id: str) -> RoomEvent:
    return RoomEvent(
        type=RoomEventType.DELIVERED,
        room_id=room_id,
        payload={"messageId": message_id, "userId": user_id},
        origin_user_id=user_id,
        exclude_origin=True,
    )


def message_seen_event(room_id: str, message_id: str, user_id: str) -> RoomEvent:
    return RoomEvent(
        type=RoomEventType.MESSAGE_SEEN,
        room_id=room_id,
        payload={"messageId": message_id, "userId": user_id},
        origin_user_id=user_id,
        exclude_origin=True,
    )


def typing_event(room_id: str, user_id: str) -> RoomEvent:
    return RoomEvent(
        type=RoomEventType.TYPING,
        room_id=room_id,
        payload={"userId": user_id},
        origin_user_id=user_id,
        exclude_origin=True,
    )


def stop_typing_event(room_id: str, user_id: str) -> RoomEvent:
    return RoomEvent(
        type=RoomEventType.STOP_TYPING,
        room_id=room_id,
        payload={"userId": user_id},
        origin_user_id=user_id,
        exclude_origin=True,
    )


def ticket_status_changed_event(
    room_id: str,
    ticket_id: str,
    new_status: TicketStatus,
    changed_by: str | None = None,
) -> RoomEvent:
    return RoomEvent(
        type=RoomEventType.TICKET_STATUS_CHANGED,
        room_id=room_id,
        payload={"ticketId": ticket_id, "newStatus": new_status.value},
        origin_user_id=changed_by,
    )
