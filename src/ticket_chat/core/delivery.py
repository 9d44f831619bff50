"""Delivery state tracking for chat messages.

Each message carries two growing sets of recipient ids: ``delivered_to``
(the recipient's client received the event) and ``seen_by`` (the
recipient was shown the message). Seen is the stronger mark and implies
delivered, but the sets are kept separate because delivered drives
immediate UI feedback while seen feeds read receipts.
"""

from __future__ import annotations

import structlog

from ..interfaces.store import MessageStore
from ..models.message import DeliveryState, DeliveryStatus, Message
from ..utils.async_helpers import AccessDenied
from ..utils.metrics import get_metrics

log = structlog.get_logger()


def status_for(message: Message, viewer_id: str) -> DeliveryStatus:
    """Tri-state of a message for a viewer.

    For the sender this answers "how far did my message get" across any
    recipient; for a recipient it reflects their own markers.
    """
    if viewer_id == message.sender_id:
        if message.seen_by:
            return DeliveryStatus.SEEN
        if message.delivered_to:
            return DeliveryStatus.DELIVERED
        return DeliveryStatus.SENT
    if viewer_id in message.seen_by:
        return DeliveryStatus.SEEN
    if viewer_id in message.delivered_to:
        return DeliveryStatus.DELIVERED
    return DeliveryStatus.SENT


def _state(message: Message, changed: bool) -> DeliveryState:
    return DeliveryState(
        message_id=message.message_id,
        delivered_to=message.delivered_to,
        seen_by=message.seen_by,
        changed=changed,
    )


class DeliveryTracker:
    """Records delivered/seen markers through the message store.

    All marks are idempotent: repeating one leaves the state unchanged
    and reports ``changed=False``. Marks by the sender are ignored.

    Example:
        tracker = DeliveryTracker(store)
        state = await tracker.mark_seen(message_id, teacher_id)
        assert teacher_id in state.delivered_to
    """

    def __init__(self, store: MessageStore) -> None:
        self._store = store

    async def mark_delivered(self, message_id: str, user_id: str) -> DeliveryState:
        """Mark a message delivered to a recipient.

        Raises:
            NotFound: If the message does not exist
            AccessDenied: If the user is not a participant of its conversation
        """
        message = await self._load_for_recipient(message_id, user_id)
        if user_id == message.sender_id or user_id in message.delivered_to:
            return _state(message, changed=False)

        updated = await self._store.add_delivered(message_id, user_id)
        changed = updated.delivered_to != message.delivered_to
        if changed:
            self._record("delivered", message_id, user_id)
        return _state(updated, changed)

    async def mark_seen(self, message_id: str, user_id: str) -> DeliveryState:
        """Mark a message seen by a recipient; also marks it delivered.

        Raises:
            NotFound: If the message does not exist
            AccessDenied: If the user is not a participant of its conversation
        """
        message = await self._load_for_recipient(message_id, user_id)
        if user_id == message.sender_id or (
            user_id in message.seen_by and user_id in message.delivered_to
        ):
            return _state(message, changed=False)

        updated = await self._store.add_seen(message_id, user_id)
        changed = updated.seen_by != message.seen_by
        if changed:
            self._record("seen", message_id, user_id)
        return _state(updated, changed)

    async def status(self, message_id: str, viewer_id: str) -> DeliveryStatus:
        """Rendering tri-state of a message for a viewer."""
        message = await self._store.get_message(message_id)
        return status_for(message, viewer_id)

    async def _load_for_recipient(self, message_id: str, user_id: str) -> Message:
        message = await self._store.get_message(message_id)
        conversation = await self._store.get_conversation(message.conversation_id)
        if not conversation.is_participant(user_id):
            raise AccessDenied(
                f"User {user_id} is not a participant of conversation "
                f"{conversation.conversation_id}"
            )
        return message

    @staticmethod
    def _record(kind: str, message_id: str, user_id: str) -> None:
        get_metrics().receipts_recorded.inc(labels={"kind": kind})
        log.debug("receipt_recorded", kind=kind, message_id=message_id, user_id=user_id)
