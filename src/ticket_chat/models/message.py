"""Data models for chat messages and their delivery state."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


@dataclass(frozen=True)
class Attachment:
    """Opaque reference returned by the attachment storage collaborator."""

    filename: str
    original_name: str
    size_bytes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "originalName": self.original_name,
            "size": self.size_bytes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Attachment":
        return cls(
            filename=data["filename"],
            original_name=data.get("originalName", data["filename"]),
            size_bytes=int(data.get("size", 0)),
        )


@dataclass(frozen=True)
class Message:
    """A persisted chat message.

    Messages are append-only. Only the delivery markers change after
    commit, and they only ever grow.
    """

    message_id: str
    conversation_id: str
    sender_id: str
    body: str
    created_at: datetime
    seq: int  # commit order within the conversation
    attachments: tuple[Attachment, ...] = ()
    delivered_to: frozenset[str] = field(default_factory=frozenset)
    seen_by: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.message_id,
            "conversationId": self.conversation_id,
            "sender": self.sender_id,
            "body": self.body,
            "attachments": [a.to_dict() for a in self.attachments],
            "createdAt": self.created_at.isoformat(),
            "seq": self.seq,
            "deliveredTo": sorted(self.delivered_to),
            "seenBy": sorted(self.seen_by),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            message_id=data["id"],
            conversation_id=data["conversationId"],
            sender_id=data["sender"],
            body=data.get("body", ""),
            created_at=datetime.fromisoformat(data["createdAt"]),
            seq=int(data["seq"]),
            attachments=tuple(Attachment.from_dict(a) for a in data.get("attachments", [])),
            delivered_to=frozenset(data.get("deliveredTo", [])),
            seen_by=frozenset(data.get("seenBy", [])),
        )


class DeliveryStatus(StrEnum):
    """Rendering tri-state of a message for one viewer."""

    SENT = "sent"
    DELIVERED = "delivered"
    SEEN = "seen"


@dataclass(frozen=True)
class DeliveryState:
    """Delivery markers of a message after a mark operation."""

    message_id: str
    delivered_to: frozenset[str]
    seen_by: frozenset[str]
    changed: bool = False  # True when the mark added something
