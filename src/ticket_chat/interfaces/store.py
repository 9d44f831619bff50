"""Abstract interface for the durable message store."""

from collections.abc import Sequence
from typing import Protocol

from ..models.conversation import Conversation
from ..models.message import Attachment, Message
from ..models.ticket import TicketStatus


class MessageStore(Protocol):
    """Durable, ordered, append-only persistence of messages per conversation.

    The store is the source of truth. Every implementation must give a
    total order per conversation (``Message.seq``) that is stable across
    reads, and must enforce at most one conversation per ticket.
    """

    async def append(
        self,
        conversation_id: str,
        sender_id: str,
        body: str,
        attachments: Sequence[Attachment] = (),
    ) -> Message:
        """
        Persist a new message at the end of the conversation.

        Args:
            conversation_id: Target conversation
            sender_id: Author of the message
            body: Message text (may be empty only with attachments)
            attachments: Ordered attachment references

        Returns:
            The committed message with its id and sequence number

        Raises:
            ValidationError: If body and attachments are both empty
            NotFound: If the conversation does not exist
        """
        ...

    async def list_by_conversation(self, conversation_id: str) -> list[Message]:
        """
        Return the full transcript in ascending commit order.

        Readers running alongside appends observe a consistent prefix.

        Raises:
            NotFound: If the conversation does not exist
        """
        ...

    async def get_message(self, message_id: str) -> Message:
        """
        Fetch one message by id.

        Raises:
            NotFound: If no such message exists
        """
        ...

    async def find_conversation(self, ticket_id: str) -> Conversation | None:
        """Return the conversation bound to a ticket, if any."""
        ...

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """
        Fetch a conversation by id.

        Raises:
            NotFound: If no such conversation exists
        """
        ...

    async def create_conversation(
        self,
        ticket_id: str,
        student_id: str,
        teacher_id: str,
        status: TicketStatus = TicketStatus.OPEN,
    ) -> Conversation:
        """
        Create the conversation for a ticket.

        Raises:
            ConflictError: If the ticket already has a conversation
        """
        ...

    async def list_conversations(self, user_id: str | None = None) -> list[Conversation]:
        """
        List conversations, most recently active first.

        Args:
            user_id: Restrict to conversations this user participates in;
                None lists all conversations
        """
        ...

    async def add_delivered(self, message_id: str, user_id: str) -> Message:
        """
        Add a user to a message's delivered set (set semantics).

        Raises:
            NotFound: If no such message exists
        """
        ...

    async def add_seen(self, message_id: str, user_id: str) -> Message:
        """
        Add a user to a message's seen and delivered sets (set semantics).

        Raises:
            NotFound: If no such message exists
        """
        ...

    async def update_conversation_status(
        self,
        conversation_id: str,
        status: TicketStatus,
    ) -> Conversation:
        """
        Refresh the conversation's mirror of the ticket status.

        Raises:
            NotFound: If the conversation does not exist
        """
        ...
