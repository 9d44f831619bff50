"""Chat session coordinator (server side).

This module implements the ChatCoordinator class that ties the chat
components together. For a submitted message it runs:
1. Load the ticket and check the caller is a participant
2. Apply the student guard (students only post on open tickets)
3. Validate body and attachments
4. Get or create the ticket's conversation
5. Append the message to the message store
6. Apply the message-driven ticket status transition
7. Publish newMessage, stopTyping and (if needed) ticketStatusChanged

Persistence is the source of truth. Broadcasting is best effort: a failed
publish is logged and counted, and the submit still succeeds because
other participants reconcile from the store when they (re)join.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from ..config.schema import ChatServiceConfig
from ..models.conversation import Conversation
from ..models.events import (
    RoomEvent,
    delivered_event,
    message_seen_event,
    new_message_event,
    stop_typing_event,
    ticket_status_changed_event,
)
from ..models.message import Attachment, DeliveryState, DeliveryStatus, Message
from ..models.principal import Principal, Role
from ..models.ticket import Ticket, TicketStatus
from ..utils.async_helpers import (
    AccessDenied,
    ConflictError,
    NotFound,
    StoreError,
    ValidationError,
    with_timeout,
)
from ..utils.logging import bind_context, unbind_context
from ..utils.metrics import Timer, get_metrics
from .access import ensure_conversation_access, ensure_ticket_access
from .delivery import DeliveryTracker, status_for
from .ticket_state import TicketStateMachine, ensure_can_send
from .transcript import render_transcript
from .typing import TypingBroadcaster

if TYPE_CHECKING:
    from ..adapters.broadcast.memory import QueueConnection
    from ..interfaces.broadcast import BroadcastChannel, Connection
    from ..interfaces.store import MessageStore
    from ..interfaces.tickets import TicketStore

log = structlog.get_logger()


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of a successful submit.

    ``ticket`` is the ticket as it stands after the message; callers must
    read the status from here rather than assume it is unchanged.
    """

    message: Message
    conversation: Conversation
    ticket: Ticket
    status_changed: bool = False


class ChatCoordinator:
    """Orchestrates submit, persist, state transition and broadcast.

    Responsibilities:
    - Gate every room operation on participant access
    - Enforce the student guard server side
    - Resolve conversation creation races
    - Record delivery receipts and publish acknowledgements
    - Publish ticket status changes to the room

    One coordinator is created per process with the process-wide store,
    ticket store and broadcast channel injected.

    Example:
        coordinator = ChatCoordinator(store, tickets, channel, config)
        result = await coordinator.submit_message(student, "T1", "Need help")
        print(result.ticket.status)  # "under review"
    """

    def __init__(
        self,
        store: MessageStore,
        tickets: TicketStore,
        channel: BroadcastChannel,
        config: ChatServiceConfig | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Durable message store
            tickets: Ticket persistence collaborator
            channel: Room broadcast channel
            config: Service configuration (defaults when omitted)
        """
        self._store = store
        self._tickets = tickets
        self._channel = channel
        self._config = config or ChatServiceConfig()

        self._tracker = DeliveryTracker(store)
        self._machine = TicketStateMachine(tickets)
        self._typing = TypingBroadcaster(channel, self._config.typing)

    @property
    def config(self) -> ChatServiceConfig:
        return self._config

    @property
    def tracker(self) -> DeliveryTracker:
        return self._tracker

    @property
    def state_machine(self) -> TicketStateMachine:
        return self._machine

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def open_conversation(self, principal: Principal, ticket_id: str) -> Conversation:
        """Return the ticket's conversation, creating it on first use.

        Raises:
            NotFound: If the ticket does not exist
            AccessDenied: If the principal is not a participant
            ValidationError: If no teacher is assigned to the ticket yet
        """
        ticket = await self._tickets.get_ticket(ticket_id)
        ensure_ticket_access(principal, ticket)
        conversation = await self._get_or_create_conversation(ticket)
        ensure_conversation_access(principal, conversation)
        return conversation

    async def list_conversations(self, principal: Principal) -> list[Conversation]:
        """Conversations visible to the principal, most recent first."""
        if principal.role == Role.ADMIN:
            return await self._store.list_conversations()
        conversations = await self._store.list_conversations(principal.id)
        if principal.role == Role.STUDENT:
            return [c for c in conversations if c.student_id == principal.id]
        return [c for c in conversations if c.teacher_id == principal.id]

    async def _get_or_create_conversation(self, ticket: Ticket) -> Conversation:
        existing = await self._store.find_conversation(ticket.ticket_id)
        if existing is not None:
            return existing

        if ticket.teacher_id is None:
            raise ValidationError("Ticket is not assigned to a teacher yet")

        try:
            conversation = await self._store.create_conversation(
                ticket.ticket_id,
                ticket.student_id,
                ticket.teacher_id,
                status=ticket.status,
            )
        except ConflictError:
            # Lost the creation race; use the winner
            winner = await self._store.find_conversation(ticket.ticket_id)
            if winner is None:
                raise
            get_metrics().conversation_conflicts.inc()
            log.info(
                "conversation_conflict_recovered",
                ticket_id=ticket.ticket_id,
                conversation_id=winner.conversation_id,
            )
            return winner

        get_metrics().conversations_created.inc()
        log.info(
            "conversation_created",
            ticket_id=ticket.ticket_id,
            conversation_id=conversation.conversation_id,
        )
        return conversation

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def submit_message(
        self,
        principal: Principal,
        room_id: str,
        body: str,
        attachments: Sequence[Attachment] = (),
    ) -> SubmitResult:
        """Persist a message, update the ticket and notify the room.

        Args:
            principal: Sender
            room_id: Room (ticket) id
            body: Message text; may be empty when attachments are given
            attachments: References from the attachment storage collaborator

        Returns:
            SubmitResult with the persisted message and current ticket

        Raises:
            NotFound: If the ticket does not exist
            AccessDenied: If the sender is not a participant, or is a
                student and the ticket is not open
            ValidationError: If the message is empty or exceeds limits
        """
        bind_context(room_id=room_id, user_id=principal.id)
        try:
            with Timer(get_metrics().submit_duration, labels={"role": principal.role.value}):
                return await self._submit(principal, room_id, body, attachments)
        finally:
            unbind_context("room_id", "user_id")

    async def _submit(
        self,
        principal: Principal,
        room_id: str,
        body: str,
        attachments: Sequence[Attachment],
    ) -> SubmitResult:
        try:
            ticket = await self._tickets.get_ticket(room_id)
            ensure_ticket_access(principal, ticket)
            ensure_can_send(ticket, principal)
            body = self._validate_content(body, attachments)
            conversation = await self._get_or_create_conversation(ticket)
            ensure_conversation_access(principal, conversation)
            message = await self._store.append(
                conversation.conversation_id,
                principal.id,
                body,
                tuple(attachments),
            )
        except (ValidationError, AccessDenied) as e:
            get_metrics().messages_rejected.inc(labels={"reason": type(e).__name__})
            log.info("message_rejected", reason=type(e).__name__, error=str(e))
            raise

        get_metrics().messages_submitted.inc(labels={"role": principal.role.value})
        log.info(
            "message_submitted",
            message_id=message.message_id,
            seq=message.seq,
            attachments=len(message.attachments),
        )

        ticket, updated = await self._apply_transition(ticket, principal.role)
        if updated is not None:
            conversation = await self._store.update_conversation_status(
                conversation.conversation_id, ticket.status
            )

        await self._broadcast(room_id, new_message_event(room_id, message))
        await self._broadcast(room_id, stop_typing_event(room_id, principal.id))
        if updated is not None:
            await self._broadcast(
                room_id,
                ticket_status_changed_event(room_id, ticket.ticket_id, ticket.status, principal.id),
            )

        return SubmitResult(
            message=message,
            conversation=conversation,
            ticket=ticket,
            status_changed=updated is not None,
        )

    def _validate_content(self, body: str, attachments: Sequence[Attachment]) -> str:
        limits = self._config.messages

        if len(attachments) > limits.max_attachments:
            raise ValidationError(
                f"At most {limits.max_attachments} attachments are allowed per message"
            )
        for attachment in attachments:
            if attachment.size_bytes > limits.max_attachment_bytes:
                raise ValidationError(
                    f"Attachment {attachment.original_name} exceeds "
                    f"{limits.max_attachment_bytes} bytes"
                )

        if not body.strip():
            if not attachments:
                raise ValidationError("Message or file is required")
            return limits.attachment_placeholder or ""

        if len(body) > limits.max_body_length:
            raise ValidationError(
                f"Message exceeds {limits.max_body_length} characters"
            )
        return body

    async def _apply_transition(
        self, ticket: Ticket, role: Role
    ) -> tuple[Ticket, Ticket | None]:
        """Return the ticket to report and the implicit update, if one was written."""
        try:
            updated = await self._machine.apply_message(ticket, role)
        except ConflictError:
            # Status moved after it was read; the newer status stands
            get_metrics().transitions_skipped.inc()
            log.info(
                "ticket_transition_skipped",
                ticket_id=ticket.ticket_id,
                read_status=ticket.status.value,
            )
            return await self._reload_ticket(ticket), None
        except StoreError as e:
            # The message is already durable; the status write can be redone
            log.error(
                "ticket_transition_failed",
                ticket_id=ticket.ticket_id,
                error=str(e),
            )
            return ticket, None
        return (updated or ticket), updated

    async def _reload_ticket(self, ticket: Ticket) -> Ticket:
        try:
            return await self._tickets.get_ticket(ticket.ticket_id)
        except StoreError as e:
            log.error("ticket_reload_failed", ticket_id=ticket.ticket_id, error=str(e))
            return ticket

    async def get_transcript(self, principal: Principal, room_id: str) -> list[Message]:
        """Full transcript of a room in commit order.

        Used for the initial load and to reconcile after a reconnect.
        Returns an empty list when nobody has posted yet.
        """
        ticket = await self._tickets.get_ticket(room_id)
        ensure_ticket_access(principal, ticket)
        conversation = await self._store.find_conversation(room_id)
        if conversation is None:
            return []
        ensure_conversation_access(principal, conversation)
        return await self._store.list_by_conversation(conversation.conversation_id)

    async def get_ticket(self, principal: Principal, ticket_id: str) -> Ticket:
        """Access-checked ticket read."""
        ticket = await self._tickets.get_ticket(ticket_id)
        ensure_ticket_access(principal, ticket)
        return ticket

    # ------------------------------------------------------------------
    # Delivery receipts
    # ------------------------------------------------------------------

    async def mark_delivered(self, principal: Principal, message_id: str) -> DeliveryState:
        """Record that the principal's client received a message."""
        message, conversation = await self._load_message(principal, message_id)
        if not conversation.is_participant(principal.id):
            return _unchanged(message)

        state = await self._tracker.mark_delivered(message_id, principal.id)
        if state.changed:
            await self._broadcast(
                conversation.room_id,
                delivered_event(conversation.room_id, message_id, principal.id),
            )
        return state

    async def mark_seen(self, principal: Principal, message_id: str) -> DeliveryState:
        """Record that the principal was shown a message."""
        message, conversation = await self._load_message(principal, message_id)
        if not conversation.is_participant(principal.id):
            return _unchanged(message)

        state = await self._tracker.mark_seen(message_id, principal.id)
        if state.changed:
            await self._broadcast(
                conversation.room_id,
                message_seen_event(conversation.room_id, message_id, principal.id),
            )
        return state

    async def delivery_status(self, principal: Principal, message_id: str) -> DeliveryStatus:
        message, _ = await self._load_message(principal, message_id)
        return status_for(message, principal.id)

    async def _load_message(
        self, principal: Principal, message_id: str
    ) -> tuple[Message, Conversation]:
        message = await self._store.get_message(message_id)
        conversation = await self._store.get_conversation(message.conversation_id)
        ensure_conversation_access(principal, conversation)
        return message, conversation

    # ------------------------------------------------------------------
    # Ticket status
    # ------------------------------------------------------------------

    async def change_ticket_status(
        self,
        principal: Principal,
        ticket_id: str,
        new_status: TicketStatus,
    ) -> Ticket:
        """Explicit teacher/admin status change, announced to the room.

        Raises:
            AccessDenied: If the principal may not change this ticket
            NotFound: If the ticket does not exist
        """
        ticket = await self._machine.change_status(principal, ticket_id, new_status)

        conversation = await self._store.find_conversation(ticket_id)
        if conversation is not None:
            await self._store.update_conversation_status(
                conversation.conversation_id, ticket.status
            )

        await self._broadcast(
            ticket_id,
            ticket_status_changed_event(ticket_id, ticket_id, ticket.status, principal.id),
        )
        return ticket

    async def render_transcript(
        self,
        principal: Principal,
        ticket_id: str,
        names: Mapping[str, str] | None = None,
    ) -> str:
        """Plain-text transcript of a resolved ticket for a helpful post.

        Raises:
            AccessDenied: If the principal is a student or an unassigned teacher
            ValidationError: If the ticket is not resolved
            NotFound: If the ticket or its conversation does not exist
        """
        if principal.role == Role.STUDENT:
            raise AccessDenied("Only teachers and admins can export transcripts")

        ticket = await self._tickets.get_ticket(ticket_id)
        if principal.role == Role.TEACHER and ticket.teacher_id != principal.id:
            raise AccessDenied(f"Teacher {principal.id} is not assigned to ticket {ticket_id}")
        if ticket.status != TicketStatus.RESOLVED:
            raise ValidationError(f"Ticket {ticket_id} is not resolved")

        conversation = await self._store.find_conversation(ticket_id)
        if conversation is None:
            raise NotFound(f"Chat not found for ticket {ticket_id}")
        messages = await self._store.list_by_conversation(conversation.conversation_id)
        return render_transcript(ticket, messages, names)

    # ------------------------------------------------------------------
    # Room membership and typing
    # ------------------------------------------------------------------

    async def join_room(self, principal: Principal, room_id: str, connection: Connection) -> None:
        """Subscribe a participant's connection to a room.

        Raises:
            AccessDenied: If the principal is not a participant or does not
                own the connection
            NotFound: If the ticket does not exist
        """
        if connection.user_id != principal.id:
            raise AccessDenied("Connection belongs to another user")
        ticket = await self._tickets.get_ticket(room_id)
        ensure_ticket_access(principal, ticket)
        await self._channel.join(room_id, connection)

    async def leave_room(self, room_id: str, connection: Connection) -> None:
        await self._channel.leave(room_id, connection)

    async def notify_typing(self, principal: Principal, room_id: str) -> bool:
        """Relay a typing signal from a joined participant."""
        self._ensure_joined(principal, room_id)
        return await self._typing.notify_typing(room_id, principal.id)

    async def notify_stop_typing(self, principal: Principal, room_id: str) -> bool:
        """Relay a stop-typing signal from a joined participant."""
        self._ensure_joined(principal, room_id)
        return await self._typing.notify_stop_typing(room_id, principal.id)

    def _ensure_joined(self, principal: Principal, room_id: str) -> None:
        # Membership was access-checked at join time
        if not any(c.user_id == principal.id for c in self._channel.members(room_id)):
            raise AccessDenied(f"User {principal.id} has not joined room {room_id}")

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    async def _broadcast(self, room_id: str, event: RoomEvent) -> bool:
        try:
            await with_timeout(
                self._channel.publish(room_id, event),
                self._config.broadcast.publish_timeout,
            )
        except Exception as e:
            get_metrics().broadcast_failures.inc(labels={"type": event.type.value})
            log.error(
                "broadcast_failed",
                room_id=room_id,
                event_type=event.type.value,
                error=str(e),
            )
            return False
        return True


def _unchanged(message: Message) -> DeliveryState:
    return DeliveryState(
        message_id=message.message_id,
        delivered_to=message.delivered_to,
        seen_by=message.seen_by,
        changed=False,
    )


async def create_coordinator(config: ChatServiceConfig) -> ChatCoordinator:
    """Factory function to create a ChatCoordinator with all dependencies.

    Instantiates the adapters selected by the configuration.

    Raises:
        ValueError: If the configuration selects an unsupported adapter
    """
    from ..adapters.store.memory import InMemoryMessageStore

    store = InMemoryMessageStore()
    tickets = await _create_ticket_store(config)
    channel = await _create_broadcast_channel(config)
    return ChatCoordinator(store, tickets, channel, config)


def create_connection(config: ChatServiceConfig, user_id: str) -> QueueConnection:
    """Create an in-process connection sized by the broadcast config."""
    from ..adapters.broadcast.memory import QueueConnection

    return QueueConnection(user_id, queue_size=config.broadcast.queue_size)


async def _create_ticket_store(config: ChatServiceConfig) -> TicketStore:
    provider = config.tickets.provider

    if provider == "memory":
        from ..adapters.tickets.memory import InMemoryTicketStore

        return InMemoryTicketStore()

    if provider == "http":
        if not config.tickets.http:
            raise ValueError("HTTP configuration required when ticket provider is 'http'")
        from ..adapters.tickets.http import HttpTicketStore

        return HttpTicketStore(config.tickets.http, config.retry)

    raise ValueError(f"Unsupported ticket store provider: {provider}")


async def _create_broadcast_channel(config: ChatServiceConfig) -> BroadcastChannel:
    provider = config.broadcast.provider

    if provider == "memory":
        from ..adapters.broadcast.memory import InMemoryBroadcastChannel

        return InMemoryBroadcastChannel()

    raise ValueError(f"Unsupported broadcast provider: {provider}")
