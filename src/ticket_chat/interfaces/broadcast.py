"""Abstract interface for the room broadcast channel."""

from typing import Protocol

from ..models.events import RoomEvent


class Connection(Protocol):
    """One participant's live connection (a browser tab or device)."""

    @property
    def connection_id(self) -> str:
        """Unique id of this connection."""
        ...

    @property
    def user_id(self) -> str:
        """User the connection is authenticated as."""
        ...

    async def send(self, event: RoomEvent) -> None:
        """
        Deliver one event to the connection.

        Raises:
            BroadcastError: If the connection can no longer accept events
        """
        ...


class BroadcastChannel(Protocol):
    """Best-effort, low-latency pub/sub scoped by room id.

    Events published while a connection is joined reach it at least once,
    in publish order for that room. Nothing is buffered for connections
    that are not joined; they reconcile from the message store on rejoin.
    """

    async def join(self, room_id: str, connection: Connection) -> None:
        """Subscribe a connection to a room."""
        ...

    async def leave(self, room_id: str, connection: Connection) -> None:
        """Unsubscribe a connection from a room. Unknown connections are ignored."""
        ...

    async def publish(self, room_id: str, event: RoomEvent) -> int:
        """
        Fan an event out to the room's joined connections.

        Events marked ``exclude_origin`` skip connections of the
        publishing user.

        Returns:
            Number of connections the event was handed to

        Raises:
            BroadcastError: If the channel itself is unavailable
        """
        ...

    def members(self, room_id: str) -> list[Connection]:
        """Connections currently joined to a room."""
        ...
