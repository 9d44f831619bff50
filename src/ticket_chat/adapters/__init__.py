"""Concrete implementations of provider interfaces."""

from .broadcast.memory import InMemoryBroadcastChannel, QueueConnection
from .store.memory import InMemoryMessageStore
from .tickets.http import HttpTicketStore
from .tickets.memory import InMemoryTicketStore

__all__ = [
    "HttpTicketStore",
    "InMemoryBroadcastChannel",
    "InMemoryMessageStore",
    "InMemoryTicketStore",
    "QueueConnection",
]
