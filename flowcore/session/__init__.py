"""Conversation sessions: messages, per-conversation state, the manager."""

from flowcore.session.manager import ConversationManager, export_markdown
from flowcore.session.messages import Message, MessageRole, ToolState, ToolStatus
from flowcore.session.session import ConversationSession

__all__ = [
    "ConversationManager",
    "ConversationSession",
    "Message",
    "MessageRole",
    "ToolState",
    "ToolStatus",
    "export_markdown",
]
