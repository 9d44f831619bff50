"""Ticket lifecycle state machine.

States: open, under review, in-progress, resolved, closed.

Explicit transitions (teacher/admin): any state to any state. Entering
resolved stamps resolved_at; entering closed stamps closed_at.

Implicit transitions driven by chat messages:
- student message while open -> under review
- teacher message in any state -> open

The teacher rule also reopens resolved and closed tickets. That matches
the behaviour of the ticket API this service sits beside, and a warning
is logged whenever it happens.

Guard: a student may only send while the ticket is open.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from ..interfaces.tickets import TicketStore
from ..models.principal import Principal, Role
from ..models.ticket import Ticket, TicketStatus
from ..utils.async_helpers import AccessDenied
from ..utils.metrics import get_metrics

log = structlog.get_logger()


def next_status_for_message(current: TicketStatus, sender_role: Role) -> TicketStatus:
    """Status a ticket moves to when a participant posts a message."""
    if sender_role == Role.STUDENT and current == TicketStatus.OPEN:
        return TicketStatus.UNDER_REVIEW
    if sender_role == Role.TEACHER:
        return TicketStatus.OPEN
    return current


def can_send(ticket: Ticket, principal: Principal) -> bool:
    """Whether the principal may post on the ticket in its current status."""
    if principal.role == Role.STUDENT:
        return ticket.status == TicketStatus.OPEN
    return True


def ensure_can_send(ticket: Ticket, principal: Principal) -> None:
    """Reject a message before anything is persisted.

    Raises:
        AccessDenied: If a student posts on a ticket that is not open
    """
    if not can_send(ticket, principal):
        raise AccessDenied(
            f"Students cannot send messages while ticket {ticket.ticket_id} "
            f"is {ticket.status.value}"
        )


class TicketStateMachine:
    """Applies status transitions through the ticket persistence collaborator.

    Example:
        machine = TicketStateMachine(tickets)
        updated = await machine.apply_message(ticket, Role.STUDENT)
        if updated is not None:
            print(updated.status)  # "under review"
    """

    def __init__(
        self,
        tickets: TicketStore,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._tickets = tickets
        self._clock = clock

    async def apply_message(self, ticket: Ticket, sender_role: Role) -> Ticket | None:
        """Write the implicit transition caused by a message, if any.

        The write only lands if the stored status is still the one the
        transition was computed from.

        Returns:
            The updated ticket, or None when the status is unchanged

        Raises:
            ConflictError: If the ticket status moved since ``ticket`` was read
        """
        target = next_status_for_message(ticket.status, sender_role)
        if target == ticket.status:
            return None
        if ticket.status.is_terminal:
            log.warning(
                "ticket_reopened_by_message",
                ticket_id=ticket.ticket_id,
                from_status=ticket.status.value,
            )
        return await self._write(ticket, target, trigger="message", expected=ticket.status)

    async def change_status(
        self,
        principal: Principal,
        ticket_id: str,
        new_status: TicketStatus,
    ) -> Ticket:
        """Explicit status change by a teacher or admin.

        Raises:
            AccessDenied: If the principal is a student, or a teacher who is
                not assigned to the ticket
            NotFound: If the ticket does not exist
        """
        if principal.role == Role.STUDENT:
            raise AccessDenied("Only teachers and admins can change ticket status")

        ticket = await self._tickets.get_ticket(ticket_id)
        if principal.role == Role.TEACHER and ticket.teacher_id != principal.id:
            raise AccessDenied(f"Teacher {principal.id} is not assigned to ticket {ticket_id}")

        return await self._write(ticket, new_status, trigger="explicit")

    async def _write(
        self,
        ticket: Ticket,
        target: TicketStatus,
        trigger: str,
        expected: TicketStatus | None = None,
    ) -> Ticket:
        now = self._clock()
        updated = await self._tickets.update_status(
            ticket.ticket_id,
            target,
            resolved_at=now if target == TicketStatus.RESOLVED else None,
            closed_at=now if target == TicketStatus.CLOSED else None,
            expected_status=expected,
        )
        get_metrics().status_transitions.inc(
            labels={"from": ticket.status.value, "to": target.value, "trigger": trigger}
        )
        log.info(
            "ticket_status_changed",
            ticket_id=ticket.ticket_id,
            from_status=ticket.status.value,
            to_status=target.value,
            trigger=trigger,
        )
        return updated
