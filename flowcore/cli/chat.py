"""Interactive chat session handler."""

from __future__ import annotations

import asyncio

from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from flowcore.cli.output import OutputFormatter
from flowcore.llm.types import ChatMessage
from flowcore.orchestrator.compression import ConversationCompressor
from flowcore.orchestrator.core import InferenceOrchestrator
from flowcore.prompts.system import EditorObject
from flowcore.session.manager import ConversationManager
from flowcore.session.session import ConversationSession
from flowcore.types import InferenceError


class ChatHandler:
    """
    Manages the interactive chat loop.

    Streams session changes into a rich ``Live`` view and doubles as the
    orchestrator's UI anchor, showing loading notices under the answer.
    """

    def __init__(
        self,
        orchestrator: InferenceOrchestrator,
        manager: ConversationManager,
        model_id: str,
        console: Console | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.manager = manager
        self.model_id = model_id
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.request_messages: list[ChatMessage] = []
        self.browsing = False
        self._running = True
        self._live: Live | None = None
        self._turn_start = 0
        self._status = ""

    @property
    def session(self) -> ConversationSession:
        return self.orchestrator.session

    # ------------------------------------------------------------------
    # UI anchor
    # ------------------------------------------------------------------

    async def loading(self, message: str | None = None) -> None:
        self._status = message or ""
        self._refresh()

    def _refresh(self, session: ConversationSession | None = None) -> None:
        if self._live is None:
            return
        messages = self.session.messages[self._turn_start:]
        parts = [
            self.formatter.render_message(m, self.session.is_thinking(m.message_id))
            for m in messages
        ]
        if self._status:
            parts.append(Text(f"  {self._status}...", style="dim"))
        self._live.update(Group(*parts))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        parts = command.strip().split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""
        router = self.orchestrator.router

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/models":
            self.formatter.format_model_list(router)
            return True

        if cmd == "/switch":
            if not arg:
                self.console.print(f"  Available models: {', '.join(router.model_ids)}")
                self.console.print(f"  Active: {self.model_id}")
            else:
                try:
                    router.set_active(arg)
                    self.model_id = arg
                    self.console.print(f"  Switched to model: [bold]{arg}[/bold]")
                except KeyError as e:
                    self.console.print(f"  [red]Error:[/red] {e}")
            return True

        if cmd == "/tools":
            self.formatter.format_tool_list(self.orchestrator.registry.list())
            return True

        if cmd == "/browse":
            self.browsing = not self.browsing
            state = "on" if self.browsing else "off"
            self.console.print(f"  Web search mode: [bold]{state}[/bold]")
            return True

        if cmd == "/export":
            transcript = self.manager.export_conversation(self.session.conversation_id)
            self.formatter.export_transcript(transcript)
            return True

        if cmd == "/compress":
            await self.compress()
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit      - Exit the chat\n"
                "  /models    - List configured models\n"
                "  /switch    - Switch model\n"
                "  /tools     - List available tools\n"
                "  /browse    - Toggle web search mode\n"
                "  /export    - Print the conversation as markdown\n"
                "  /compress  - Summarise this conversation into a new one\n"
                "  /help      - Show this help\n"
            )
            return True

        return False

    async def compress(self) -> None:
        """Replace the current conversation with a compressed copy."""
        compressor = ConversationCompressor(
            self.manager, self.orchestrator.router, self.orchestrator.settings
        )
        source_id = self.session.conversation_id
        self.console.print("[dim]Compressing conversation...[/dim]")
        result = await compressor.compress(source_id, self.model_id)
        if not result.ok:
            self.console.print(f"[red]Compression failed:[/red] {result.error}")
            return

        compressed = self.manager.session(result.conversation_id)
        summary = compressed.messages[-1].document if compressed.messages else ""
        self.orchestrator.session = compressed
        self.request_messages = [ChatMessage.assistant(summary)] if summary else []
        self.formatter.export_transcript(summary)
        self.console.print(f"[dim]Continuing in conversation {result.conversation_id}[/dim]")

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def handle_input(self, user_input: str) -> None:
        """Run one turn through the orchestrator, rendering it live."""
        editor_object = EditorObject(text=user_input, options={"browsing": self.browsing})
        self._turn_start = len(self.session.messages) + 1
        self._status = ""
        self.session.add_observer(self._refresh)
        try:
            with Live(console=self.console, refresh_per_second=12) as live:
                self._live = live
                await self.orchestrator.run(self.model_id, editor_object, self.request_messages)
                self._status = ""
                self._refresh()
        except InferenceError as e:
            self.console.print(f"[red]Error:[/red] {e}")
            detail = self.orchestrator.router.collected_error(self.model_id)
            if detail:
                self.console.print(f"[dim]{detail}[/dim]")
        except Exception as e:
            self.console.print(f"[red]Error:[/red] {e}")
        finally:
            self._live = None
            self.session.remove_observer(self._refresh)

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]flowcore[/bold] - streaming chat\n"
            f"[dim]Model: {self.orchestrator.router.model_name(self.model_id)}. "
            "Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            await self.handle_input(user_input)
