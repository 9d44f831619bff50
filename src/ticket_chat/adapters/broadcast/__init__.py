"""Room broadcast channel implementations."""

from .memory import InMemoryBroadcastChannel, QueueConnection

__all__ = ["InMemoryBroadcastChannel", "QueueConnection"]
