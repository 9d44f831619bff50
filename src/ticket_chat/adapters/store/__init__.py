"""Message store implementations."""

from .memory import InMemoryMessageStore

__all__ = ["InMemoryMessageStore"]
