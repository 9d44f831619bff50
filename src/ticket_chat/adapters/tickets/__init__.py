"""Ticket persistence collaborator implementations."""

from .http import HttpTicketStore
from .memory import InMemoryTicketStore

__all__ = ["HttpTicketStore", "InMemoryTicketStore"]
