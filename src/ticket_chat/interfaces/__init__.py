"""Protocol definitions for pluggable adapters."""

from .broadcast import BroadcastChannel, Connection
from .store import MessageStore
from .tickets import TicketStore

__all__ = ["BroadcastChannel", "Connection", "MessageStore", "TicketStore"]
