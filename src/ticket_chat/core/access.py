"""Capability checks for rooms and tickets.

A principal may use a room when it is an admin, or when it is the
ticket's student or assigned teacher acting in that role.
"""

from __future__ import annotations

from ..models.conversation import Conversation
from ..models.principal import Principal, Role
from ..models.ticket import Ticket
from ..utils.async_helpers import AccessDenied


def can_access_ticket(principal: Principal, ticket: Ticket) -> bool:
    if principal.role == Role.ADMIN:
        return True
    if principal.role == Role.STUDENT:
        return principal.id == ticket.student_id
    if principal.role == Role.TEACHER:
        return ticket.teacher_id is not None and principal.id == ticket.teacher_id
    return False


def can_access_conversation(principal: Principal, conversation: Conversation) -> bool:
    if principal.role == Role.ADMIN:
        return True
    if principal.role == Role.STUDENT:
        return principal.id == conversation.student_id
    if principal.role == Role.TEACHER:
        return principal.id == conversation.teacher_id
    return False


def ensure_ticket_access(principal: Principal, ticket: Ticket) -> None:
    """Raise AccessDenied unless the principal may use the ticket's room."""
    if not can_access_ticket(principal, ticket):
        raise AccessDenied(f"User {principal.id} is not a participant of ticket {ticket.ticket_id}")


def ensure_conversation_access(principal: Principal, conversation: Conversation) -> None:
    """Raise AccessDenied unless the principal may use the conversation."""
    if not can_access_conversation(principal, conversation):
        raise AccessDenied(
            f"User {principal.id} is not a participant of conversation "
            f"{conversation.conversation_id}"
        )
