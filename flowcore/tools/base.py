from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from flowcore.types import ToolResult

if TYPE_CHECKING:
    from flowcore.session.messages import Message
    from flowcore.session.session import ConversationSession


class ToolKind(Enum):
    WEB_SEARCH = "web_search"
    GENERIC = "generic"


@dataclass
class WebDocument:
    title: str
    url: str
    text_document: str


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("additionalProperties", False)
    return s


class BaseTool(ABC):
    """Common declaration surface shared by every tool kind."""

    kind: ToolKind

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict: ...

    @property
    def interface_name(self) -> str:
        """Name shown to the user while the tool runs."""
        return self.name.replace("_", " ").title()

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.parameters),
            },
        }


class Tool(BaseTool):
    """A generic tool: parsed arguments in, ``ToolResult`` out."""

    kind = ToolKind.GENERIC

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult: ...


class WebSearchTool(BaseTool):
    """
    The web search tool.

    It is executed directly by the orchestrator and returns documents that
    are registered in the turn's reference index.
    """

    kind = ToolKind.WEB_SEARCH

    @abstractmethod
    async def execute(
        self,
        args: str,
        session: ConversationSession,
        message: Message,
        anchor: Any = None,
    ) -> list[WebDocument]: ...
