"""
Conversation messages as the user sees them.

These are distinct from request-side ``ChatMessage`` objects: a session
message carries presentation state (reasoning fold, tool status, web search
results) and is mutated in place while a turn streams.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any

from flowcore.tools.base import WebDocument


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    HINT = "hint"
    TOOL_HINT = "tool_hint"
    WEB_SEARCH = "web_search"


class ToolState(IntEnum):
    RUNNING = 0
    SUCCEEDED = 1
    FAILED = 2


@dataclass
class ToolStatus:
    name: str
    state: ToolState = ToolState.RUNNING
    message: str = ""


@dataclass
class Message:
    """
    A single message in a conversation.

    Attributes
    ----------
    document:
        The visible text (answer content for assistant messages).
    reasoning_content:
        Streamed "thinking" text, shown separately from *document*.
    is_thinking_fold:
        Whether the reasoning section is collapsed.
    incomplete:
        Set when generation was interrupted before the stream ended.
    """

    role: MessageRole
    document: str = ""
    reasoning_content: str = ""
    is_thinking_fold: bool = False
    tool_status: ToolStatus | None = None
    web_documents: list[WebDocument] = field(default_factory=list)
    incomplete: bool = False
    message_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def update(self, name: str, value: Any) -> None:
        """Set a single field by name, rejecting unknown fields."""
        if name not in self.__dataclass_fields__:
            raise AttributeError(f"Message has no field {name!r}")
        setattr(self, name, value)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["role"] = self.role.value
        d["created_at"] = self.created_at.isoformat()
        if self.tool_status is not None:
            d["tool_status"]["state"] = int(self.tool_status.state)
        return d
