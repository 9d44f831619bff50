"""Plain-text transcript of a ticket conversation.

Used when a resolved ticket is turned into a public helpful post.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from ..models.message import Message
from ..models.ticket import Ticket


def render_transcript(
    ticket: Ticket,
    messages: Sequence[Message],
    names: Mapping[str, str] | None = None,
) -> str:
    """Render a ticket and its messages as readable text.

    Args:
        ticket: Ticket the conversation belongs to
        messages: Transcript in commit order
        names: Optional user id -> display name mapping

    Returns:
        The transcript text
    """
    names = names or {}

    def name(user_id: str | None) -> str:
        if user_id is None:
            return "Unassigned"
        return names.get(user_id, user_id)

    lines = [
        f"Ticket: {ticket.title}",
        f"Category: {ticket.category}",
        f"Student: {name(ticket.student_id)}",
        f"Teacher: {name(ticket.teacher_id)}",
        "",
        "---",
        "",
    ]
    for message in messages:
        timestamp = message.created_at.strftime("%Y-%m-%d %H:%M")
        lines.append(f"{name(message.sender_id)} [{timestamp}]:")
        lines.append(message.body)
        for attachment in message.attachments:
            lines.append(f"Attachment: {attachment.original_name} ({attachment.filename})")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
