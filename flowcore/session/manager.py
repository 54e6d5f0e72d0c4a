"""In-memory conversation manager with transcript export."""

from __future__ import annotations

import logging
from typing import Callable

from flowcore.session.messages import Message, MessageRole
from flowcore.session.session import ConversationSession
from flowcore.types import ConversationNotFoundError

logger = logging.getLogger(__name__)

Exporter = Callable[[ConversationSession], str]

_ROLE_HEADINGS = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Assistant",
}


def _export_message(message: Message) -> str | None:
    heading = _ROLE_HEADINGS.get(message.role)
    if heading is None:
        # hints, tool status and search results are presentation only
        return None
    text = message.document.strip()
    if not text:
        return None
    return f"**{heading}**\n\n{text}"


def export_markdown(session: ConversationSession) -> str:
    """Render the user/assistant exchange of a conversation as markdown."""
    blocks = [f"# {session.title}"] if session.title else []
    for message in session.messages:
        block = _export_message(message)
        if block:
            blocks.append(block)
    return "\n\n".join(blocks)


def export_plain_text(session: ConversationSession) -> str:
    lines = []
    for message in session.messages:
        heading = _ROLE_HEADINGS.get(message.role)
        if heading and message.document.strip():
            lines.append(f"{heading}: {message.document.strip()}")
    return "\n\n".join(lines)


EXPORTERS: dict[str, Exporter] = {
    "markdown": export_markdown,
    "text": export_plain_text,
}


class ConversationManager:
    """
    Owns every conversation session of the process.

    Sessions are kept in insertion order; an optional *persistence* hook is
    passed to every session it creates.
    """

    def __init__(
        self,
        persistence: Callable[[ConversationSession], None] | None = None,
    ) -> None:
        self._sessions: dict[str, ConversationSession] = {}
        self._persistence = persistence

    def create_new_conversation(
        self,
        title: str = "",
        configure: Callable[[ConversationSession], None] | None = None,
    ) -> ConversationSession:
        session = ConversationSession(title=title, persistence=self._persistence)
        if configure is not None:
            configure(session)
        self._sessions[session.conversation_id] = session
        logger.debug("Created conversation %s", session.conversation_id)
        return session

    def conversation(self, conversation_id: str) -> ConversationSession | None:
        return self._sessions.get(conversation_id)

    def session(self, conversation_id: str) -> ConversationSession:
        session = self._sessions.get(conversation_id)
        if session is None:
            raise ConversationNotFoundError(conversation_id)
        return session

    def conversations(self) -> list[ConversationSession]:
        return list(self._sessions.values())

    def remove_conversation(self, conversation_id: str) -> None:
        self._sessions.pop(conversation_id, None)

    def export_conversation(
        self,
        conversation_id: str,
        export_format: str = "markdown",
    ) -> str:
        """Export a conversation transcript; raises for unknown ids or formats."""
        session = self.session(conversation_id)
        try:
            exporter = EXPORTERS[export_format]
        except KeyError:
            raise ValueError(f"Unknown export format: {export_format}") from None
        return exporter(session)
