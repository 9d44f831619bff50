"""Subscriber-side chat session.

A ChatSession is one participant's live view of a room: the transcript
merged from the initial load and live events, the current ticket status,
and who is typing. It acknowledges delivery of incoming messages and
marks messages seen while the room is in view.

Messages are keyed by id, so the same message arriving from the submit
response, the broadcast and a reconcile load is shown once. The
transcript is always ordered by commit sequence, not by arrival.
"""

from __future__ import annotations

import dataclasses
from collections.abc import AsyncIterable, Sequence
from typing import TYPE_CHECKING

import structlog

from ..models.events import RoomEvent, RoomEventType
from ..models.message import Attachment, DeliveryState, DeliveryStatus, Message
from ..models.principal import Principal, Role
from ..models.ticket import TicketStatus
from ..utils.async_helpers import ChatError
from ..utils.metrics import get_metrics
from .delivery import status_for
from .typing import TypingIndicator

if TYPE_CHECKING:
    from ..interfaces.broadcast import Connection
    from .coordinator import ChatCoordinator, SubmitResult

log = structlog.get_logger()


class ChatSession:
    """One participant's connection to a room.

    Example:
        connection = QueueConnection(student.id)
        session = ChatSession(coordinator, student, "T1", connection)
        await session.join()
        task = asyncio.create_task(session.run(connection.events()))
        await session.send("Is this right?")
    """

    def __init__(
        self,
        coordinator: ChatCoordinator,
        principal: Principal,
        room_id: str,
        connection: Connection,
        typing_ttl: float | None = None,
        auto_seen: bool = True,
    ) -> None:
        """Initialize the session.

        Args:
            coordinator: Server-side coordinator
            principal: The participant viewing the room
            room_id: Room (ticket) id
            connection: The participant's broadcast connection
            typing_ttl: Seconds before a typing indicator expires
                (defaults to the coordinator's typing config)
            auto_seen: Mark messages seen as soon as they are merged;
                disable while the room is not in view
        """
        self._coordinator = coordinator
        self._principal = principal
        self._room_id = room_id
        self._connection = connection
        self._auto_seen = auto_seen

        ttl = typing_ttl if typing_ttl is not None else coordinator.config.typing.indicator_ttl
        self._typing = TypingIndicator(ttl=ttl)
        self._messages: dict[str, Message] = {}
        self._ticket_status: TicketStatus | None = None
        self._joined = False

    @property
    def room_id(self) -> str:
        return self._room_id

    @property
    def principal(self) -> Principal:
        return self._principal

    @property
    def joined(self) -> bool:
        return self._joined

    @property
    def transcript(self) -> list[Message]:
        """Merged transcript in commit order."""
        return sorted(self._messages.values(), key=lambda m: m.seq)

    @property
    def ticket_status(self) -> TicketStatus | None:
        return self._ticket_status

    @property
    def typing_user(self) -> str | None:
        """Other participant currently shown as typing, if any."""
        return self._typing.current(self._room_id)

    @property
    def can_send(self) -> bool:
        """Whether the composer should be enabled."""
        if self._principal.role != Role.STUDENT:
            return True
        return self._ticket_status == TicketStatus.OPEN

    def status_of(self, message_id: str) -> DeliveryStatus:
        """Delivery tri-state of a message as this participant sees it."""
        return status_for(self._messages[message_id], self._principal.id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def join(self) -> None:
        """Join the room and load its current state.

        The connection is subscribed before the load so no event falls
        between the two; anything received twice is deduplicated.
        """
        await self._coordinator.join_room(self._principal, self._room_id, self._connection)
        self._joined = True
        await self.reconcile()

    async def leave(self) -> None:
        if self._joined:
            await self._coordinator.leave_room(self._room_id, self._connection)
            self._joined = False

    async def reconcile(self) -> None:
        """Reload transcript and ticket status from the store.

        Called on join and after a reconnect; events missed while
        disconnected are never replayed by the channel.
        """
        messages = await self._coordinator.get_transcript(self._principal, self._room_id)
        ticket = await self._coordinator.get_ticket(self._principal, self._room_id)

        for message in messages:
            self._merge(message)
        self._ticket_status = ticket.status

        log.info(
            "session_reconciled",
            room_id=self._room_id,
            user_id=self._principal.id,
            messages=len(self._messages),
            ticket_status=ticket.status.value,
        )
        await self.on_seenable()

    async def run(self, events: AsyncIterable[RoomEvent]) -> None:
        """Apply events from the connection until it closes."""
        async for event in events:
            await self.handle_event(event)

    async def send(
        self,
        body: str,
        attachments: Sequence[Attachment] = (),
    ) -> SubmitResult:
        """Submit a message and merge the response immediately."""
        result = await self._coordinator.submit_message(
            self._principal, self._room_id, body, attachments
        )
        self.add_local(result.message)
        self._ticket_status = result.ticket.status
        return result

    async def notify_typing(self) -> bool:
        return await self._coordinator.notify_typing(self._principal, self._room_id)

    async def notify_stop_typing(self) -> bool:
        return await self._coordinator.notify_stop_typing(self._principal, self._room_id)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle_event(self, event: RoomEvent) -> None:
        """Apply one room event to the local view."""
        if event.room_id != self._room_id:
            log.debug("foreign_event_ignored", room_id=event.room_id, session_room=self._room_id)
            return

        payload = event.payload
        if event.type == RoomEventType.NEW_MESSAGE:
            await self.on_new_message_received(Message.from_dict(payload["message"]))
        elif event.type == RoomEventType.DELIVERED:
            self._apply_marker(payload["messageId"], payload["userId"], seen=False)
        elif event.type == RoomEventType.MESSAGE_SEEN:
            self._apply_marker(payload["messageId"], payload["userId"], seen=True)
        elif event.type == RoomEventType.TYPING:
            if payload["userId"] != self._principal.id:
                self._typing.on_typing(self._room_id, payload["userId"])
        elif event.type == RoomEventType.STOP_TYPING:
            self._typing.on_stop_typing(self._room_id, payload["userId"])
        elif event.type == RoomEventType.TICKET_STATUS_CHANGED:
            self._ticket_status = TicketStatus(payload["newStatus"])

    async def on_new_message_received(self, message: Message) -> bool:
        """Merge a broadcast message.

        Returns:
            True if the message was new to this session
        """
        self._typing.on_message(self._room_id, message.sender_id)

        if not self._merge(message):
            get_metrics().duplicates_suppressed.inc()
            log.debug(
                "duplicate_suppressed",
                room_id=self._room_id,
                message_id=message.message_id,
            )
            return False

        if message.sender_id != self._principal.id:
            await self._acknowledge(message, seen=False)
        await self.on_seenable()
        return True

    def add_local(self, message: Message) -> bool:
        """Merge a message from the submit response. Returns True if new."""
        return self._merge(message)

    async def on_seenable(self) -> int:
        """Mark every visible message from others as seen.

        Returns:
            Number of messages newly marked seen
        """
        if not self._auto_seen or self._principal.role == Role.ADMIN:
            return 0

        marked = 0
        for message in self.transcript:
            if message.sender_id == self._principal.id:
                continue
            if self._principal.id in message.seen_by:
                continue
            if await self._acknowledge(message, seen=True):
                marked += 1
        return marked

    def set_in_view(self, in_view: bool) -> None:
        self._auto_seen = in_view

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _merge(self, message: Message) -> bool:
        existing = self._messages.get(message.message_id)
        if existing is None:
            self._messages[message.message_id] = message
            return True
        # Markers only grow; keep the union of both copies
        self._messages[message.message_id] = dataclasses.replace(
            existing,
            delivered_to=existing.delivered_to | message.delivered_to,
            seen_by=existing.seen_by | message.seen_by,
        )
        return False

    def _apply_marker(self, message_id: str, user_id: str, seen: bool) -> None:
        message = self._messages.get(message_id)
        if message is None:
            return
        self._messages[message_id] = dataclasses.replace(
            message,
            delivered_to=message.delivered_to | {user_id},
            seen_by=message.seen_by | {user_id} if seen else message.seen_by,
        )

    def _apply_state(self, state: DeliveryState) -> None:
        message = self._messages.get(state.message_id)
        if message is None:
            return
        self._messages[state.message_id] = dataclasses.replace(
            message,
            delivered_to=message.delivered_to | state.delivered_to,
            seen_by=message.seen_by | state.seen_by,
        )

    async def _acknowledge(self, message: Message, seen: bool) -> bool:
        try:
            if seen:
                state = await self._coordinator.mark_seen(self._principal, message.message_id)
            else:
                state = await self._coordinator.mark_delivered(
                    self._principal, message.message_id
                )
        except ChatError as e:
            log.warning(
                "receipt_failed",
                message_id=message.message_id,
                seen=seen,
                error=str(e),
            )
            return False
        self._apply_state(state)
        return state.changed
