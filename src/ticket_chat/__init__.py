"""Real-time chat delivery for student-support tickets."""

from ticket_chat._version import __version__

__all__ = ["__version__"]
