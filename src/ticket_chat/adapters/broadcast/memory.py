"""In-process room broadcast channel.

Implements the BroadcastChannel protocol for a single process:
- Per-room subscription tables keyed by connection id
- Per-room locks so one room's events fan out in publish order
- Connections that fail to accept an event are dropped from the room
  and must reconcile from the message store when they rejoin

QueueConnection is the matching Connection implementation: each
connection owns a bounded asyncio.Queue that a websocket writer (or a
ChatSession in tests) drains through ``events()``.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import structlog

from ...interfaces.broadcast import Connection
from ...models.events import RoomEvent
from ...utils.async_helpers import BroadcastError
from ...utils.metrics import get_metrics

log = structlog.get_logger()

_CLOSED = object()


@dataclass
class _RoomLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class QueueConnection:
    """Connection that buffers events in a bounded queue.

    Example:
        connection = QueueConnection(user_id="S1")
        await channel.join("T1", connection)

        async for event in connection.events():
            await websocket.send_json(event.to_dict())
    """

    def __init__(
        self,
        user_id: str,
        connection_id: str | None = None,
        queue_size: int = 256,
    ) -> None:
        """Initialize the connection.

        Args:
            user_id: Authenticated user behind the connection
            connection_id: Unique id (generated when omitted)
            queue_size: Maximum number of undelivered events
        """
        self._user_id = user_id
        self._connection_id = connection_id or uuid.uuid4().hex
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=queue_size + 1)
        self._queue_size = queue_size
        self._closed = False

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of events waiting to be consumed."""
        return self._queue.qsize()

    async def send(self, event: RoomEvent) -> None:
        if self._closed:
            raise BroadcastError(f"Connection {self._connection_id} is closed")
        # One slot is reserved for the close marker
        if self._queue.qsize() >= self._queue_size:
            raise BroadcastError(f"Connection {self._connection_id} queue is full")
        self._queue.put_nowait(event)

    def get_nowait(self) -> RoomEvent | None:
        """Pop one buffered event without waiting, or None when empty."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if item is _CLOSED:
            return None
        assert isinstance(item, RoomEvent)
        return item

    def close(self) -> None:
        """Stop the connection; ``events()`` ends after draining."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[RoomEvent]:
        """Yield buffered events until the connection is closed."""
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            assert isinstance(item, RoomEvent)
            yield item


class InMemoryBroadcastChannel:
    """BroadcastChannel with in-process fan-out.

    Example:
        channel = InMemoryBroadcastChannel()
        await channel.join("T1", teacher_connection)
        await channel.publish("T1", typing_event("T1", "S1"))
    """

    def __init__(self) -> None:
        self._rooms: dict[str, dict[str, Connection]] = {}
        self._room_locks: dict[str, _RoomLock] = {}

    @asynccontextmanager
    async def _locked(self, room_id: str) -> AsyncIterator[None]:
        """Hold the room lock; the lock is dropped once the room is empty and idle."""
        entry = self._room_locks.get(room_id)
        if entry is None:
            entry = self._room_locks[room_id] = _RoomLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and room_id not in self._rooms:
                del self._room_locks[room_id]

    async def join(self, room_id: str, connection: Connection) -> None:
        async with self._locked(room_id):
            room = self._rooms.setdefault(room_id, {})
            if connection.connection_id in room:
                return
            room[connection.connection_id] = connection

        get_metrics().active_connections.inc()
        log.info(
            "connection_joined",
            room_id=room_id,
            user_id=connection.user_id,
            connection_id=connection.connection_id,
        )

    async def leave(self, room_id: str, connection: Connection) -> None:
        async with self._locked(room_id):
            removed = self._remove(room_id, connection.connection_id)

        if removed:
            log.info(
                "connection_left",
                room_id=room_id,
                user_id=connection.user_id,
                connection_id=connection.connection_id,
            )

    async def publish(self, room_id: str, event: RoomEvent) -> int:
        if event.room_id != room_id:
            raise BroadcastError(
                f"Event for room {event.room_id} published to room {room_id}"
            )

        delivered = 0
        async with self._locked(room_id):
            for connection in list(self._rooms.get(room_id, {}).values()):
                if event.exclude_origin and connection.user_id == event.origin_user_id:
                    continue
                try:
                    await connection.send(event)
                    delivered += 1
                except Exception as e:
                    log.warning(
                        "connection_dropped",
                        room_id=room_id,
                        connection_id=connection.connection_id,
                        error=str(e),
                    )
                    get_metrics().connections_dropped.inc()
                    self._remove(room_id, connection.connection_id)

        get_metrics().events_published.inc(labels={"type": event.type.value})
        log.debug(
            "event_published",
            room_id=room_id,
            event_type=event.type.value,
            recipients=delivered,
        )
        return delivered

    def members(self, room_id: str) -> list[Connection]:
        return list(self._rooms.get(room_id, {}).values())

    def rooms(self) -> list[str]:
        """Rooms with at least one joined connection."""
        return [room_id for room_id, members in self._rooms.items() if members]

    def _remove(self, room_id: str, connection_id: str) -> bool:
        """Drop a connection from a room. Caller holds the room lock."""
        room = self._rooms.get(room_id)
        if room is None or connection_id not in room:
            return False
        del room[connection_id]
        if not room:
            del self._rooms[room_id]
        get_metrics().active_connections.dec()
        return True
