"""Data models for ticket conversations."""

from dataclasses import dataclass
from datetime import datetime

from .ticket import TicketStatus


@dataclass(frozen=True)
class Conversation:
    """The chat room bound 1:1 to a ticket."""

    conversation_id: str
    ticket_id: str
    student_id: str
    teacher_id: str
    created_at: datetime
    last_activity: datetime
    status: TicketStatus = TicketStatus.OPEN  # mirror of the ticket status

    @property
    def room_id(self) -> str:
        """Broadcast scope of this conversation."""
        return self.ticket_id

    @property
    def participants(self) -> frozenset[str]:
        return frozenset((self.student_id, self.teacher_id))

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.student_id, self.teacher_id)

    def recipients_of(self, sender_id: str) -> frozenset[str]:
        """Participants other than the sender."""
        return self.participants - {sender_id}
