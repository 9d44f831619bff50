"""In-process ticket store, used in tests and single-process deployments."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from ...models.ticket import Ticket, TicketStatus
from ...utils.async_helpers import ConflictError, NotFound


class InMemoryTicketStore:
    """TicketStore backed by a dictionary.

    Example:
        tickets = InMemoryTicketStore([Ticket("T1", student_id="S1", teacher_id="P1")])
        ticket = await tickets.update_status("T1", TicketStatus.UNDER_REVIEW)
    """

    def __init__(
        self,
        tickets: Iterable[Ticket] = (),
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._tickets: dict[str, Ticket] = {t.ticket_id: t for t in tickets}
        self._clock = clock
        self._lock = asyncio.Lock()

    def add(self, ticket: Ticket) -> None:
        """Insert or replace a ticket."""
        self._tickets[ticket.ticket_id] = ticket

    async def get_ticket(self, ticket_id: str) -> Ticket:
        async with self._lock:
            return self._ticket_or_raise(ticket_id)

    async def update_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        resolved_at: datetime | None = None,
        closed_at: datetime | None = None,
        expected_status: TicketStatus | None = None,
    ) -> Ticket:
        async with self._lock:
            ticket = self._ticket_or_raise(ticket_id)
            if expected_status is not None and ticket.status != expected_status:
                raise ConflictError(
                    f"Ticket {ticket_id} is {ticket.status.value}, "
                    f"expected {expected_status.value}",
                    existing_id=ticket_id,
                )
            updated = dataclasses.replace(
                ticket,
                status=status,
                resolved_at=resolved_at or ticket.resolved_at,
                closed_at=closed_at or ticket.closed_at,
                updated_at=self._clock(),
            )
            self._tickets[ticket_id] = updated
            return updated

    async def ping(self) -> bool:
        return True

    def _ticket_or_raise(self, ticket_id: str) -> Ticket:
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise NotFound(f"Ticket not found: {ticket_id}")
        return ticket
