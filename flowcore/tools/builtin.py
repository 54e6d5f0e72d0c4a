"""Built-in tools that ship with flowcore."""

from flowcore.tools.base import Tool
from flowcore.types import ToolResult

WAIT_FOR_NEXT_ROUND = "wait_for_next_round"


class WaitForNextRoundTool(Tool):
    """
    Lets the model end a round without doing anything.

    Requests for it are filtered out by the orchestrator and never executed.
    """

    @property
    def name(self) -> str:
        return WAIT_FOR_NEXT_ROUND

    @property
    def description(self) -> str:
        return (
            "Call this when you have nothing further to do and want to wait "
            "for the user's next message."
        )

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs) -> ToolResult:
        return ToolResult(success=True, content="")


def is_wait_request(name: str) -> bool:
    return name.strip().lower() == WAIT_FOR_NEXT_ROUND
