"""In-process message store.

Implements the MessageStore protocol with plain dictionaries guarded by a
single asyncio.Lock. The lock makes each append, marker update and
conversation insert atomic, which gives:

- a gap-free per-conversation sequence (commit order = transcript order)
- a unique ticket -> conversation index
- set semantics for delivered/seen markers

Suitable for tests, demos and single-process deployments.
"""

from __future__ import annotations

import asyncio
import dataclasses
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

import structlog

from ...models.conversation import Conversation
from ...models.message import Attachment, Message
from ...models.ticket import TicketStatus
from ...utils.async_helpers import ConflictError, NotFound, ValidationError

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryMessageStore:
    """MessageStore backed by in-process dictionaries.

    Example:
        store = InMemoryMessageStore()
        conversation = await store.create_conversation("T1", "S1", "P1")
        message = await store.append(conversation.conversation_id, "S1", "hi")
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        """Initialize an empty store.

        Args:
            clock: Source of timestamps (injectable for tests)
            id_factory: Source of unique ids for messages and conversations
        """
        self._clock = clock
        self._new_id = id_factory
        self._lock = asyncio.Lock()
        self._conversations: dict[str, Conversation] = {}
        self._by_ticket: dict[str, str] = {}
        self._messages: dict[str, list[Message]] = {}
        self._message_index: dict[str, tuple[str, int]] = {}

    async def append(
        self,
        conversation_id: str,
        sender_id: str,
        body: str,
        attachments: Sequence[Attachment] = (),
    ) -> Message:
        if not body.strip() and not attachments:
            raise ValidationError("Message or file is required")

        async with self._lock:
            conversation = self._conversation_or_raise(conversation_id)
            transcript = self._messages[conversation_id]
            now = self._clock()
            message = Message(
                message_id=self._new_id(),
                conversation_id=conversation_id,
                sender_id=sender_id,
                body=body,
                created_at=now,
                seq=len(transcript) + 1,
                attachments=tuple(attachments),
            )
            transcript.append(message)
            self._message_index[message.message_id] = (conversation_id, len(transcript) - 1)
            self._conversations[conversation_id] = dataclasses.replace(
                conversation, last_activity=now
            )

        log.debug(
            "message_appended",
            conversation_id=conversation_id,
            message_id=message.message_id,
            seq=message.seq,
        )
        return message

    async def list_by_conversation(self, conversation_id: str) -> list[Message]:
        async with self._lock:
            self._conversation_or_raise(conversation_id)
            return list(self._messages[conversation_id])

    async def get_message(self, message_id: str) -> Message:
        async with self._lock:
            conversation_id, position = self._locate(message_id)
            return self._messages[conversation_id][position]

    async def find_conversation(self, ticket_id: str) -> Conversation | None:
        async with self._lock:
            conversation_id = self._by_ticket.get(ticket_id)
            if conversation_id is None:
                return None
            return self._conversations[conversation_id]

    async def get_conversation(self, conversation_id: str) -> Conversation:
        async with self._lock:
            return self._conversation_or_raise(conversation_id)

    async def create_conversation(
        self,
        ticket_id: str,
        student_id: str,
        teacher_id: str,
        status: TicketStatus = TicketStatus.OPEN,
    ) -> Conversation:
        async with self._lock:
            existing = self._by_ticket.get(ticket_id)
            if existing is not None:
                raise ConflictError(
                    f"Conversation already exists for ticket {ticket_id}",
                    existing_id=existing,
                )
            now = self._clock()
            conversation = Conversation(
                conversation_id=self._new_id(),
                ticket_id=ticket_id,
                student_id=student_id,
                teacher_id=teacher_id,
                created_at=now,
                last_activity=now,
                status=status,
            )
            self._conversations[conversation.conversation_id] = conversation
            self._by_ticket[ticket_id] = conversation.conversation_id
            self._messages[conversation.conversation_id] = []
            return conversation

    async def list_conversations(self, user_id: str | None = None) -> list[Conversation]:
        async with self._lock:
            conversations = [
                c
                for c in self._conversations.values()
                if user_id is None or c.is_participant(user_id)
            ]
        return sorted(conversations, key=lambda c: c.last_activity, reverse=True)

    async def add_delivered(self, message_id: str, user_id: str) -> Message:
        async with self._lock:
            return self._update_markers(message_id, delivered={user_id})

    async def add_seen(self, message_id: str, user_id: str) -> Message:
        async with self._lock:
            return self._update_markers(message_id, delivered={user_id}, seen={user_id})

    async def update_conversation_status(
        self,
        conversation_id: str,
        status: TicketStatus,
    ) -> Conversation:
        async with self._lock:
            conversation = dataclasses.replace(
                self._conversation_or_raise(conversation_id), status=status
            )
            self._conversations[conversation_id] = conversation
            return conversation

    def _conversation_or_raise(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFound(f"Conversation not found: {conversation_id}")
        return conversation

    def _locate(self, message_id: str) -> tuple[str, int]:
        location = self._message_index.get(message_id)
        if location is None:
            raise NotFound(f"Message not found: {message_id}")
        return location

    def _update_markers(
        self,
        message_id: str,
        delivered: set[str] | None = None,
        seen: set[str] | None = None,
    ) -> Message:
        """Union new markers into a message. Caller holds the lock."""
        conversation_id, position = self._locate(message_id)
        current = self._messages[conversation_id][position]
        updated = dataclasses.replace(
            current,
            delivered_to=current.delivered_to | (delivered or set()),
            seen_by=current.seen_by | (seen or set()),
        )
        if updated != current:
            self._messages[conversation_id][position] = updated
        return updated
