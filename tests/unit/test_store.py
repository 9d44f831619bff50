"""Tests for the in-memory message store."""

import asyncio
import itertools
from datetime import UTC, datetime, timedelta

import pytest

from ticket_chat.adapters.store.memory import InMemoryMessageStore
from ticket_chat.models.message import Attachment
from ticket_chat.models.ticket import TicketStatus
from ticket_chat.utils.async_helpers import ConflictError, NotFound, ValidationError


def ticking_clock(start: datetime | None = None):
    """Clock that advances one second per call."""
    base = start or datetime(2024, 5, 1, tzinfo=UTC)
    counter = itertools.count()
    return lambda: base + timedelta(seconds=next(counter))


class TestConversations:
    """Tests for conversation creation and lookup."""

    @pytest.mark.asyncio
    async def test_create_and_find(self, store: InMemoryMessageStore) -> None:
        """Test a created conversation is found by its ticket."""
        created = await store.create_conversation("T1", "S1", "P1")
        found = await store.find_conversation("T1")
        assert found == created
        assert await store.find_conversation("T2") is None

    @pytest.mark.asyncio
    async def test_duplicate_create_raises_conflict(self, store: InMemoryMessageStore) -> None:
        """Test a second conversation for the same ticket is refused."""
        created = await store.create_conversation("T1", "S1", "P1")
        with pytest.raises(ConflictError) as exc_info:
            await store.create_conversation("T1", "S1", "P1")
        assert exc_info.value.existing_id == created.conversation_id

    @pytest.mark.asyncio
    async def test_concurrent_creates_yield_one_conversation(
        self, store: InMemoryMessageStore
    ) -> None:
        """Test only one of many racing creates succeeds."""
        results = await asyncio.gather(
            *(store.create_conversation("T1", "S1", "P1") for _ in range(5)),
            return_exceptions=True,
        )
        created = [r for r in results if not isinstance(r, BaseException)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(created) == 1
        assert len(conflicts) == 4
        assert len(await store.list_conversations()) == 1

    @pytest.mark.asyncio
    async def test_get_unknown_conversation(self, store: InMemoryMessageStore) -> None:
        """Test unknown conversation ids raise NotFound."""
        with pytest.raises(NotFound):
            await store.get_conversation("missing")

    @pytest.mark.asyncio
    async def test_list_sorted_by_last_activity(self) -> None:
        """Test the most recently active conversation comes first."""
        store = InMemoryMessageStore(clock=ticking_clock())
        first = await store.create_conversation("T1", "S1", "P1")
        second = await store.create_conversation("T2", "S1", "P1")
        await store.append(first.conversation_id, "S1", "bump")

        listed = await store.list_conversations("S1")
        assert [c.ticket_id for c in listed] == ["T1", "T2"]
        assert second.conversation_id in {c.conversation_id for c in listed}

    @pytest.mark.asyncio
    async def test_list_filters_by_participant(self, store: InMemoryMessageStore) -> None:
        """Test a user only sees conversations they take part in."""
        await store.create_conversation("T1", "S1", "P1")
        await store.create_conversation("T2", "S2", "P2")
        assert [c.ticket_id for c in await store.list_conversations("S2")] == ["T2"]
        assert len(await store.list_conversations()) == 2

    @pytest.mark.asyncio
    async def test_update_status_mirror(self, store: InMemoryMessageStore) -> None:
        """Test the conversation status mirror can be refreshed."""
        conversation = await store.create_conversation("T1", "S1", "P1")
        updated = await store.update_conversation_status(
            conversation.conversation_id, TicketStatus.RESOLVED
        )
        assert updated.status == TicketStatus.RESOLVED
        assert (await store.find_conversation("T1")).status == TicketStatus.RESOLVED


class TestMessages:
    """Tests for appending and reading messages."""

    @pytest.mark.asyncio
    async def test_append_assigns_increasing_seq(self, store: InMemoryMessageStore) -> None:
        """Test commit order is recorded in seq."""
        conversation = await store.create_conversation("T1", "S1", "P1")
        first = await store.append(conversation.conversation_id, "S1", "one")
        second = await store.append(conversation.conversation_id, "P1", "two")

        assert (first.seq, second.seq) == (1, 2)
        assert first.message_id != second.message_id
        assert first.delivered_to == frozenset()
        assert first.seen_by == frozenset()

    @pytest.mark.asyncio
    async def test_list_returns_commit_order(self, store: InMemoryMessageStore) -> None:
        """Test the transcript is ordered by commit."""
        conversation = await store.create_conversation("T1", "S1", "P1")
        await asyncio.gather(
            *(store.append(conversation.conversation_id, "S1", f"m{i}") for i in range(10))
        )
        transcript = await store.list_by_conversation(conversation.conversation_id)
        assert [m.seq for m in transcript] == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_append_updates_last_activity(self) -> None:
        """Test appending bumps the conversation's last activity."""
        store = InMemoryMessageStore(clock=ticking_clock())
        conversation = await store.create_conversation("T1", "S1", "P1")
        message = await store.append(conversation.conversation_id, "S1", "hi")
        refreshed = await store.get_conversation(conversation.conversation_id)
        assert refreshed.last_activity == message.created_at
        assert refreshed.last_activity > conversation.last_activity

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, store: InMemoryMessageStore) -> None:
        """Test a message needs text or an attachment."""
        conversation = await store.create_conversation("T1", "S1", "P1")
        with pytest.raises(ValidationError, match="Message or file is required"):
            await store.append(conversation.conversation_id, "S1", "   ")

    @pytest.mark.asyncio
    async def test_attachment_only_message_accepted(self, store: InMemoryMessageStore) -> None:
        """Test an empty body is fine when an attachment is present."""
        conversation = await store.create_conversation("T1", "S1", "P1")
        message = await store.append(
            conversation.conversation_id, "S1", "", [Attachment("f.png", "shot.png", 10)]
        )
        assert message.attachments[0].original_name == "shot.png"

    @pytest.mark.asyncio
    async def test_append_to_unknown_conversation(self, store: InMemoryMessageStore) -> None:
        """Test appending to a missing conversation raises NotFound."""
        with pytest.raises(NotFound):
            await store.append("missing", "S1", "hi")

    @pytest.mark.asyncio
    async def test_get_unknown_message(self, store: InMemoryMessageStore) -> None:
        """Test unknown message ids raise NotFound."""
        with pytest.raises(NotFound):
            await store.get_message("missing")


class TestMarkers:
    """Tests for delivered/seen marker updates."""

    @pytest.mark.asyncio
    async def test_add_delivered_is_idempotent(self, store: InMemoryMessageStore) -> None:
        """Test repeating a delivered mark leaves the set unchanged."""
        conversation = await store.create_conversation("T1", "S1", "P1")
        message = await store.append(conversation.conversation_id, "S1", "hi")

        once = await store.add_delivered(message.message_id, "P1")
        twice = await store.add_delivered(message.message_id, "P1")
        assert once.delivered_to == twice.delivered_to == frozenset({"P1"})

    @pytest.mark.asyncio
    async def test_add_seen_implies_delivered(self, store: InMemoryMessageStore) -> None:
        """Test a seen mark also records delivery."""
        conversation = await store.create_conversation("T1", "S1", "P1")
        message = await store.append(conversation.conversation_id, "S1", "hi")

        updated = await store.add_seen(message.message_id, "P1")
        assert updated.seen_by == frozenset({"P1"})
        assert updated.delivered_to == frozenset({"P1"})

    @pytest.mark.asyncio
    async def test_concurrent_marks_are_not_lost(self, store: InMemoryMessageStore) -> None:
        """Test racing marks from different users all land."""
        conversation = await store.create_conversation("T1", "S1", "P1")
        message = await store.append(conversation.conversation_id, "S1", "hi")

        await asyncio.gather(
            store.add_delivered(message.message_id, "P1"),
            store.add_seen(message.message_id, "X1"),
            store.add_delivered(message.message_id, "X2"),
        )
        stored = await store.get_message(message.message_id)
        assert stored.delivered_to == frozenset({"P1", "X1", "X2"})
        assert stored.seen_by == frozenset({"X1"})
