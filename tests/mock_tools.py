"""Mock tool implementations for testing."""

import asyncio

from flowcore.tools.base import Tool, WebDocument, WebSearchTool
from flowcore.types import ToolResult


class EchoTool(Tool):
    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echoes the input message back."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message to echo"},
            },
            "required": ["message"],
        }

    async def execute(self, **kwargs) -> ToolResult:
        msg = kwargs.get("message", "")
        return ToolResult(success=True, content=msg)


class FailingTool(Tool):
    @property
    def name(self) -> str:
        return "always_fails"

    @property
    def description(self) -> str:
        return "Reports a failure."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs) -> ToolResult:
        return ToolResult(success=False, content="", error="disk on fire")


class ExplodingTool(Tool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Raises an exception."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs) -> ToolResult:
        raise RuntimeError("boom")


class SlowTool(Tool):
    @property
    def name(self) -> str:
        return "slow"

    @property
    def description(self) -> str:
        return "Sleeps longer than any sane timeout."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs) -> ToolResult:
        await asyncio.sleep(10)
        return ToolResult(success=True, content="late")


class StoreMemoryTool(Tool):
    @property
    def name(self) -> str:
        return "store_memory"

    @property
    def description(self) -> str:
        return "Stores a fact about the user."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"content": {"type": "string"}},
            "required": ["content"],
        }

    async def execute(self, **kwargs) -> ToolResult:
        return ToolResult(success=True, content="stored")


class MockWebSearchTool(WebSearchTool):
    def __init__(self, documents: list[WebDocument] | None = None) -> None:
        self.documents = documents or []
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return "Searches the web."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"query": {"type": "string"}},
            "required": ["query"],
        }

    async def execute(self, args, session, message, anchor=None) -> list[WebDocument]:
        self.calls.append(args)
        return list(self.documents)
