"""Typing indicator propagation.

Typing signals are ephemeral: they are published on the room channel and
held in subscriber memory, never written to the message store.

- TypingBroadcaster: publishing side, with a per-(room, user) throttle so
  a signal per keystroke does not flood the room
- TypingIndicator: receiving side, one indicator per room, last signal
  wins, cleared by stopTyping, by a new message from the typist, or by
  expiry
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog
from cachetools import TTLCache

from ..config.schema import TypingConfig
from ..interfaces.broadcast import BroadcastChannel
from ..models.events import RoomEvent, stop_typing_event, typing_event
from ..utils.async_helpers import RateLimiter

log = structlog.get_logger()


class TypingBroadcaster:
    """Fire-and-forget typing notifications scoped to a room.

    Neither method raises: a failed publish is logged and dropped.

    Example:
        typing = TypingBroadcaster(channel, config.typing)
        await typing.notify_typing("T1", "S1")
        await typing.notify_stop_typing("T1", "S1")
    """

    def __init__(
        self,
        channel: BroadcastChannel,
        config: TypingConfig | None = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._channel = channel
        self._config = config or TypingConfig()
        # A limiter left alone for min_interval is full again and can go
        self._limiters: TTLCache[tuple[str, str], RateLimiter] = TTLCache(
            maxsize=self._config.max_tracked_typists,
            ttl=self._config.min_interval or 1.0,
            timer=timer,
        )

    async def notify_typing(self, room_id: str, user_id: str) -> bool:
        """Tell the other participants that a user is typing.

        Returns:
            True if a signal was published, False if throttled or failed
        """
        if not await self._allow(room_id, user_id):
            return False
        return await self._publish(room_id, typing_event(room_id, user_id))

    async def notify_stop_typing(self, room_id: str, user_id: str) -> bool:
        """Tell the other participants that a user stopped typing.

        Never throttled; the next typing signal goes out immediately.
        """
        self._limiters.pop((room_id, user_id), None)
        return await self._publish(room_id, stop_typing_event(room_id, user_id))

    async def _allow(self, room_id: str, user_id: str) -> bool:
        if self._config.min_interval <= 0:
            return True
        key = (room_id, user_id)
        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = RateLimiter(rate=1.0 / self._config.min_interval, capacity=1)
        # Re-inserting restarts the expiry clock
        self._limiters[key] = limiter
        return await limiter.try_acquire()

    async def _publish(self, room_id: str, event: RoomEvent) -> bool:
        try:
            await self._channel.publish(room_id, event)
        except Exception as e:
            log.warning(
                "typing_signal_dropped",
                room_id=room_id,
                event_type=event.type.value,
                error=str(e),
            )
            return False
        return True


class TypingIndicator:
    """Subscriber-side typing state.

    Example:
        indicator = TypingIndicator(ttl=10)
        indicator.on_typing("T1", "S1")
        indicator.current("T1")  # "S1"
        indicator.on_message("T1", "S1")
        indicator.current("T1")  # None
    """

    def __init__(
        self,
        ttl: float = 10.0,
        maxsize: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._typing: TTLCache[str, str] = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)

    def on_typing(self, room_id: str, user_id: str) -> None:
        self._typing[room_id] = user_id

    def on_stop_typing(self, room_id: str, user_id: str) -> None:
        if self._typing.get(room_id) == user_id:
            del self._typing[room_id]

    def on_message(self, room_id: str, sender_id: str) -> None:
        """A new message from the typist supersedes their indicator."""
        self.on_stop_typing(room_id, sender_id)

    def current(self, room_id: str) -> str | None:
        """User currently shown as typing in a room, if any."""
        return self._typing.get(room_id)
