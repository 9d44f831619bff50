"""Data models for support tickets."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class TicketStatus(StrEnum):
    """Lifecycle status of a ticket.

    Values match the wire format used by the ticket API.
    """

    OPEN = "open"
    UNDER_REVIEW = "under review"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        """Closed and resolved tickets accept no further student messages."""
        return self in (TicketStatus.RESOLVED, TicketStatus.CLOSED)


@dataclass(frozen=True)
class Ticket:
    """A support ticket as seen by the chat subsystem."""

    ticket_id: str
    student_id: str
    teacher_id: str | None  # None until a teacher is assigned
    status: TicketStatus = TicketStatus.OPEN
    title: str = ""
    category: str = ""
    resolved_at: datetime | None = None
    closed_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_assigned(self) -> bool:
        return self.teacher_id is not None
