from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from importlib.metadata import entry_points

from flowcore.llm.types import ToolCallRequest
from flowcore.tools.base import BaseTool, Tool, ToolKind
from flowcore.tools.validation import ToolValidator
from flowcore.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)

MEMORY_TOOL_NAMES = frozenset(
    {
        "store_memory",
        "recall_memory",
        "list_memories",
        "update_memory",
        "delete_memory",
    }
)


@dataclass
class ResolvedTool:
    """A registered tool matched to a request, tagged with its kind."""

    kind: ToolKind
    tool: BaseTool

    @property
    def interface_name(self) -> str:
        return self.tool.interface_name


class ToolRegistry:
    def __init__(self, tool_timeout: float = 30.0):
        self._tools: dict[str, BaseTool] = {}
        self._disabled: set[str] = set()
        self.tool_timeout = tool_timeout

    @staticmethod
    def _key(name: str) -> str:
        return name.strip().lower()

    def register(self, tool: BaseTool, *, overwrite: bool = False) -> None:
        key = self._key(tool.name)
        if key in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[key] = tool

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(self._key(name))

    def require(self, name: str) -> BaseTool:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def set_enabled(self, name: str, enabled: bool) -> None:
        key = self._key(name)
        if enabled:
            self._disabled.discard(key)
        else:
            self._disabled.add(key)

    def is_enabled(self, name: str) -> bool:
        key = self._key(name)
        return key in self._tools and key not in self._disabled

    def list(self, include_disabled: bool = False) -> list[BaseTool]:
        tools = [
            t
            for key, t in self._tools.items()
            if include_disabled or key not in self._disabled
        ]
        return sorted(tools, key=lambda t: t.name)

    def declarations(self) -> list[dict]:
        """OpenAI function declarations of every enabled tool."""
        return [t.to_openai_schema() for t in self.list()]

    def has_memory_tools(self) -> bool:
        return any(self._key(t.name) in MEMORY_TOOL_NAMES for t in self.list())

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def find_tool(self, request: ToolCallRequest) -> ResolvedTool | None:
        """Resolve a model request to an enabled tool (case-insensitive)."""
        if not self.is_enabled(request.name):
            return None
        tool = self._tools[self._key(request.name)]
        return ResolvedTool(kind=tool.kind, tool=tool)

    async def perform(self, tool: Tool, args: str) -> ToolResult:
        """
        Run a generic tool with the raw argument string from the model.

        Never raises for tool-side problems: bad JSON, schema violations,
        timeouts and exceptions all come back as a failed ``ToolResult``.
        """
        arguments, error = ToolValidator.parse_arguments(args)
        if arguments is None:
            return ToolResult(
                success=False,
                content=f"Invalid arguments: {error}",
                error=error,
                error_code=ErrorCode.INVALID_ARGUMENTS,
            )

        valid, error = ToolValidator.validate(tool, arguments)
        if not valid:
            return ToolResult(
                success=False,
                content=f"Validation error: {error}",
                error=error,
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        try:
            return await asyncio.wait_for(
                tool.execute(**arguments),
                timeout=self.tool_timeout,
            )
        except asyncio.TimeoutError:
            return ToolResult(
                success=False,
                content=f"Tool timed out after {self.tool_timeout}s",
                error=f"Timeout after {self.tool_timeout}s",
                error_code=ErrorCode.TIMEOUT,
            )
        except Exception as e:
            logger.exception("Tool %s raised", tool.name)
            return ToolResult(
                success=False,
                content=f"Tool exception: {e}",
                error=str(e),
                error_code=ErrorCode.TOOL_EXCEPTION,
            )

    def load_plugins(
        self,
        *,
        enabled: bool,
        group: str = "flowcore.tools",
        allow_tools: set[str] | None = None,
    ) -> int:
        """Load tools advertised through the ``flowcore.tools`` entry point group."""
        if not enabled:
            return 0
        loaded = 0
        for ep in entry_points(group=group):
            if allow_tools and ep.name not in allow_tools:
                continue
            tool_cls = ep.load()
            self.register(tool_cls())
            loaded += 1
        return loaded
