"""Tests for the in-memory room broadcast channel."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ticket_chat.adapters.broadcast.memory import InMemoryBroadcastChannel, QueueConnection
from ticket_chat.models.events import RoomEventType, new_message_event, typing_event
from ticket_chat.utils.async_helpers import BroadcastError
from ticket_chat.utils.metrics import get_metrics


class TestQueueConnection:
    """Tests for QueueConnection."""

    @pytest.mark.asyncio
    async def test_send_and_get(self) -> None:
        """Test events are buffered in order."""
        connection = QueueConnection("S1")
        await connection.send(typing_event("T1", "P1"))
        await connection.send(typing_event("T1", "P2"))

        assert connection.pending == 2
        assert connection.get_nowait().payload["userId"] == "P1"
        assert connection.get_nowait().payload["userId"] == "P2"
        assert connection.get_nowait() is None

    @pytest.mark.asyncio
    async def test_full_queue_raises(self) -> None:
        """Test a slow consumer overflows instead of blocking the publisher."""
        connection = QueueConnection("S1", queue_size=1)
        await connection.send(typing_event("T1", "P1"))
        with pytest.raises(BroadcastError, match="queue is full"):
            await connection.send(typing_event("T1", "P1"))

    @pytest.mark.asyncio
    async def test_closed_connection_rejects_send(self) -> None:
        """Test sending to a closed connection raises."""
        connection = QueueConnection("S1")
        connection.close()
        assert connection.closed
        with pytest.raises(BroadcastError, match="closed"):
            await connection.send(typing_event("T1", "P1"))

    @pytest.mark.asyncio
    async def test_events_drains_then_stops_on_close(self) -> None:
        """Test the event stream ends after close."""
        connection = QueueConnection("S1")
        await connection.send(typing_event("T1", "P1"))
        connection.close()

        received = [event async for event in connection.events()]
        assert len(received) == 1


class TestInMemoryBroadcastChannel:
    """Tests for InMemoryBroadcastChannel."""

    @pytest.mark.asyncio
    async def test_publish_reaches_only_room_members(
        self, channel: InMemoryBroadcastChannel, make_message
    ) -> None:
        """Test events are scoped to their room."""
        in_room = QueueConnection("P1")
        elsewhere = QueueConnection("P2")
        await channel.join("T1", in_room)
        await channel.join("T2", elsewhere)

        delivered = await channel.publish("T1", new_message_event("T1", make_message()))

        assert delivered == 1
        assert in_room.pending == 1
        assert elsewhere.pending == 0

    @pytest.mark.asyncio
    async def test_new_message_reaches_sender_connections(
        self, channel: InMemoryBroadcastChannel, make_message
    ) -> None:
        """Test the sender's other tabs receive their own message."""
        tab_one = QueueConnection("S1")
        tab_two = QueueConnection("S1")
        await channel.join("T1", tab_one)
        await channel.join("T1", tab_two)

        await channel.publish("T1", new_message_event("T1", make_message(sender_id="S1")))

        assert tab_one.pending == tab_two.pending == 1

    @pytest.mark.asyncio
    async def test_exclude_origin_skips_publisher(
        self, channel: InMemoryBroadcastChannel
    ) -> None:
        """Test typing is not echoed to the typist."""
        typist = QueueConnection("S1")
        peer = QueueConnection("P1")
        await channel.join("T1", typist)
        await channel.join("T1", peer)

        delivered = await channel.publish("T1", typing_event("T1", "S1"))

        assert delivered == 1
        assert typist.pending == 0
        assert peer.get_nowait().type == RoomEventType.TYPING

    @pytest.mark.asyncio
    async def test_join_is_idempotent(self, channel: InMemoryBroadcastChannel) -> None:
        """Test joining twice does not duplicate delivery."""
        connection = QueueConnection("P1")
        await channel.join("T1", connection)
        await channel.join("T1", connection)

        await channel.publish("T1", typing_event("T1", "S1"))

        assert connection.pending == 1
        assert get_metrics().active_connections.get() == 1

    @pytest.mark.asyncio
    async def test_leave_stops_delivery(self, channel: InMemoryBroadcastChannel) -> None:
        """Test a connection that left receives nothing."""
        connection = QueueConnection("P1")
        await channel.join("T1", connection)
        await channel.leave("T1", connection)

        assert await channel.publish("T1", typing_event("T1", "S1")) == 0
        assert channel.members("T1") == []
        assert channel.rooms() == []

    @pytest.mark.asyncio
    async def test_failing_connection_is_dropped(
        self, channel: InMemoryBroadcastChannel
    ) -> None:
        """Test a connection whose send fails is removed from the room."""
        broken = MagicMock()
        broken.connection_id = "broken"
        broken.user_id = "P1"
        broken.send = AsyncMock(side_effect=ConnectionResetError("gone"))
        healthy = QueueConnection("P2")
        await channel.join("T1", broken)
        await channel.join("T1", healthy)

        delivered = await channel.publish("T1", typing_event("T1", "S1"))

        assert delivered == 1
        assert [c.connection_id for c in channel.members("T1")] == [healthy.connection_id]
        assert get_metrics().connections_dropped.get() == 1

    @pytest.mark.asyncio
    async def test_room_mismatch_raises(self, channel: InMemoryBroadcastChannel) -> None:
        """Test an event cannot be published outside its room."""
        with pytest.raises(BroadcastError):
            await channel.publish("T2", typing_event("T1", "S1"))

    @pytest.mark.asyncio
    async def test_concurrent_publishes_keep_per_room_order(
        self, channel: InMemoryBroadcastChannel, make_message
    ) -> None:
        """Test every subscriber sees the same event order."""
        first = QueueConnection("P1")
        second = QueueConnection("P2")
        await channel.join("T1", first)
        await channel.join("T1", second)

        await asyncio.gather(
            *(
                channel.publish("T1", new_message_event("T1", make_message(message_id=f"m{i}")))
                for i in range(20)
            )
        )

        def ids(connection: QueueConnection) -> list[str]:
            out = []
            while (event := connection.get_nowait()) is not None:
                out.append(event.payload["message"]["id"])
            return out

        assert ids(first) == ids(second)

    @pytest.mark.asyncio
    async def test_publish_counts_events(self, channel: InMemoryBroadcastChannel) -> None:
        """Test published events are counted by type."""
        await channel.publish("T1", typing_event("T1", "S1"))
        assert get_metrics().events_published.get(labels={"type": "typing"}) == 1

    @pytest.mark.asyncio
    async def test_room_state_released_when_empty(
        self, channel: InMemoryBroadcastChannel
    ) -> None:
        """Test rooms that empty out leave no per-room state behind."""
        for i in range(100):
            connection = QueueConnection("P1")
            await channel.join(f"R{i}", connection)
            await channel.leave(f"R{i}", connection)
        await channel.publish("R-unjoined", typing_event("R-unjoined", "S1"))

        assert channel.rooms() == []
        assert channel._room_locks == {}

    @pytest.mark.asyncio
    async def test_room_lock_kept_while_members_remain(
        self, channel: InMemoryBroadcastChannel
    ) -> None:
        """Test an occupied room keeps its lock until the last member leaves."""
        first = QueueConnection("S1")
        second = QueueConnection("P1")
        await channel.join("T1", first)
        await channel.join("T1", second)
        await channel.leave("T1", first)

        assert list(channel._room_locks) == ["T1"]

        await channel.leave("T1", second)
        assert channel._room_locks == {}

    @pytest.mark.asyncio
    async def test_concurrent_join_and_leave_share_one_lock(
        self, channel: InMemoryBroadcastChannel
    ) -> None:
        """Test racing joins and leaves leave a consistent room table."""
        connections = [QueueConnection(f"U{i}") for i in range(10)]
        await asyncio.gather(*(channel.join("T1", c) for c in connections))
        await asyncio.gather(*(channel.leave("T1", c) for c in connections))

        assert channel.members("T1") == []
        assert channel._room_locks == {}
