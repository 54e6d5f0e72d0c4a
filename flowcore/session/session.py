"""
Conversation session.

Holds the ordered message list of one conversation and the set of messages
currently "thinking".  Persistence and UI refresh are delegated:

- ``save()`` hands the session to an optional persistence hook.
- ``notify_messages_did_change()`` calls every registered observer.

Both are fire-and-forget from the orchestrator's point of view; a failing
observer is logged and does not stop the turn.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from flowcore.session.messages import Message, MessageRole

logger = logging.getLogger(__name__)

Observer = Callable[["ConversationSession"], None]


class ConversationSession:
    """
    Manages the messages of a single conversation.

    Parameters
    ----------
    conversation_id:
        Id of the conversation; a new uuid4 if omitted.
    persistence:
        Callable invoked with the session on every ``save()``.
    """

    def __init__(
        self,
        conversation_id: str | None = None,
        title: str = "",
        persistence: Callable[[ConversationSession], None] | None = None,
    ) -> None:
        self.conversation_id = conversation_id or str(uuid.uuid4())
        self.title = title
        self.messages: list[Message] = []
        self._persistence = persistence
        self._observers: list[Observer] = []
        self._thinking: set[str] = set()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def append_new_message(
        self,
        role: MessageRole,
        configure: Callable[[Message], None] | None = None,
    ) -> Message:
        """Create a message, let *configure* fill it in, then append it."""
        message = Message(role=role)
        if configure is not None:
            configure(message)
        self.messages.append(message)
        return message

    def message(self, message_id: str) -> Message | None:
        for m in self.messages:
            if m.message_id == message_id:
                return m
        return None

    def messages_with_role(self, role: MessageRole) -> list[Message]:
        return [m for m in self.messages if m.role == role]

    # ------------------------------------------------------------------
    # Thinking state
    # ------------------------------------------------------------------

    def start_thinking(self, message_id: str) -> None:
        self._thinking.add(message_id)

    def stop_thinking(self, message_id: str) -> None:
        self._thinking.discard(message_id)

    def is_thinking(self, message_id: str) -> bool:
        return message_id in self._thinking

    # ------------------------------------------------------------------
    # Persistence / observers
    # ------------------------------------------------------------------

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def notify_messages_did_change(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self)
            except Exception:
                logger.exception("Session observer failed")

    def save(self) -> None:
        if self._persistence is None:
            return
        try:
            self._persistence(self)
        except Exception:
            logger.exception("Saving conversation %s failed", self.conversation_id)
