"""Data models and transfer objects."""

from .conversation import Conversation
from .events import (
    RoomEvent,
    RoomEventType,
    delivered_event,
    message_seen_event,
    new_message_event,
    stop_typing_event,
    ticket_status_changed_event,
    typing_event,
)
from .message import Attachment, DeliveryState, DeliveryStatus, Message
from .principal import Principal, Role
from .ticket import Ticket, TicketStatus

__all__ = [
    # Principal models
    "Role",
    "Principal",
    # Ticket models
    "TicketStatus",
    "Ticket",
    # Conversation models
    "Conversation",
    # Message models
    "Attachment",
    "Message",
    "DeliveryStatus",
    "DeliveryState",
    # Event models
    "RoomEventType",
    "RoomEvent",
    "new_message_event",
    "delivered_event",
    "message_seen_event",
    "typing_event",
    "stop_typing_event",
    "ticket_status_changed_event",
]
