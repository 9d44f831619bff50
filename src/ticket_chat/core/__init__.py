"""Core chat delivery components.

This module exports the main business logic classes:
- ChatCoordinator: Server-side orchestrator for submit, receipts and status
- ChatSession: One participant's live view of a room
- DeliveryTracker: Records delivered/seen markers
- TicketStateMachine: Applies ticket status transitions
- TypingBroadcaster / TypingIndicator: Ephemeral typing signals
"""

from ticket_chat.core.coordinator import (
    ChatCoordinator,
    SubmitResult,
    create_connection,
    create_coordinator,
)
from ticket_chat.core.delivery import DeliveryTracker, status_for
from ticket_chat.core.session import ChatSession
from ticket_chat.core.ticket_state import (
    TicketStateMachine,
    can_send,
    next_status_for_message,
)
from ticket_chat.core.transcript import render_transcript
from ticket_chat.core.typing import TypingBroadcaster, TypingIndicator

__all__ = [
    "ChatCoordinator",
    "ChatSession",
    "DeliveryTracker",
    "SubmitResult",
    "TicketStateMachine",
    "TypingBroadcaster",
    "TypingIndicator",
    "can_send",
    "create_connection",
    "create_coordinator",
    "next_status_for_message",
    "render_transcript",
    "status_for",
]
