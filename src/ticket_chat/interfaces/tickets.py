"""Abstract interface for the ticket persistence collaborator."""

from datetime import datetime
from typing import Protocol

from ..models.ticket import Ticket, TicketStatus


class TicketStore(Protocol):
    """Read/write access to ticket status fields.

    Tickets are owned by the wider application. The chat subsystem only
    reads them and writes ``status``, ``resolved_at`` and ``closed_at``.
    """

    async def get_ticket(self, ticket_id: str) -> Ticket:
        """
        Fetch a ticket.

        Raises:
            NotFound: If the ticket does not exist
            StoreError: On transient persistence failures
        """
        ...

    async def update_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        resolved_at: datetime | None = None,
        closed_at: datetime | None = None,
        expected_status: TicketStatus | None = None,
    ) -> Ticket:
        """
        Write a new status, plus the matching timestamp when given.

        When ``expected_status`` is given the write only happens if the
        stored status still equals it.

        Returns:
            The updated ticket

        Raises:
            ConflictError: If the stored status is not ``expected_status``
            NotFound: If the ticket does not exist
            StoreError: On transient persistence failures
        """
        ...
