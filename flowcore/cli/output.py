"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console, Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from flowcore.llm.router import ModelRouter
from flowcore.session.messages import Message, MessageRole, ToolState
from flowcore.tools.base import BaseTool

TOOL_STATE_STYLES = {
    ToolState.RUNNING: ("running", "yellow"),
    ToolState.SUCCEEDED: ("ok", "green"),
    ToolState.FAILED: ("failed", "red"),
}


class OutputFormatter:
    """Rich-based output formatting for the flowcore CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_model_list(self, router: ModelRouter) -> None:
        if not router.model_ids:
            self.console.print("[dim]No models configured.[/dim]")
            return

        table = Table(title="Models")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Provider", no_wrap=True)
        table.add_column("Tools", no_wrap=True)
        table.add_column("Max tokens", justify="right")

        for model_id in router.model_ids:
            entry = router.entry(model_id)
            marker = " *" if model_id == router.active_model else ""
            table.add_row(
                model_id + marker,
                entry.display_name,
                entry.provider.name,
                "yes" if entry.supports_tools else "no",
                str(entry.max_completion_tokens),
            )
        self.console.print(table)

    def format_tool_list(self, tools: list[BaseTool]) -> None:
        if not tools:
            self.console.print("[dim]No tools registered.[/dim]")
            return

        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Kind", no_wrap=True)
        table.add_column("Description")
        for t in tools:
            table.add_row(t.name, t.kind.value, t.description)
        self.console.print(table)

    def format_config(self, config: dict[str, Any]) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Panel(
            Syntax(config_json, "json", theme="monokai"),
            title="Effective Config",
        ))

    def render_message(self, message: Message, thinking: bool = False) -> RenderableType:
        """Renderable for one session message, used by the live chat view."""
        if message.role == MessageRole.TOOL_HINT and message.tool_status is not None:
            label, color = TOOL_STATE_STYLES[message.tool_status.state]
            return Text.from_markup(
                f"  [dim]tool[/dim] [cyan]{message.tool_status.name}[/cyan] [{color}]{label}[/{color}]"
            )
        if message.role == MessageRole.WEB_SEARCH:
            lines = [f"  [dim]web search:[/dim] {len(message.web_documents)} results"]
            lines.extend(f"    [dim]{d.title}[/dim] {d.url}" for d in message.web_documents)
            return Text.from_markup("\n".join(lines))
        if message.role == MessageRole.HINT:
            return Text(message.document, style="dim italic")

        parts: list[RenderableType] = []
        if message.reasoning_content and not message.is_thinking_fold:
            title = "thinking..." if thinking else "thoughts"
            parts.append(Panel(Text(message.reasoning_content, style="dim"), title=title))
        elif message.reasoning_content:
            parts.append(Text("  [reasoning collapsed]", style="dim"))
        if message.document:
            parts.append(Markdown(message.document))
        if message.incomplete:
            parts.append(Text("  [interrupted]", style="yellow"))
        return Group(*parts)

    def export_transcript(self, transcript: str) -> None:
        self.console.print(Markdown(transcript))
