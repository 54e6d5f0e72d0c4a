"""
Orchestrator core -- drives one user turn to completion.

A turn is a sequence of rounds.  Each round:
1. Streams one model response into a fresh assistant message
2. Tracks the "thinking" state while only reasoning has arrived
3. Appends the finished assistant message to the request log
4. Executes any requested tools, in arrival order, feeding one tool message
   per call back into the log
5. Reports whether another round is needed

``run`` wraps the rounds with system prompt assembly and a round limit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from flowcore.config import InferenceSettings
from flowcore.llm.router import ModelRouter
from flowcore.llm.types import ChatMessage, ToolCallRequest
from flowcore.orchestrator.web_reference import (
    TurnContext,
    fix_web_references,
    format_as_web_archive,
)
from flowcore.prompts.system import (
    EditorObject,
    MemoryProvider,
    inject_system_commands,
    merge_system_messages,
)
from flowcore.session.messages import Message, MessageRole, ToolState, ToolStatus
from flowcore.session.session import ConversationSession
from flowcore.tools.base import Tool, ToolKind, WebSearchTool
from flowcore.tools.builtin import is_wait_request
from flowcore.tools.registry import ToolRegistry
from flowcore.types import EmptyResponseError, UnknownToolError

logger = logging.getLogger(__name__)

THINKING_WITHOUT_CONTENT = "Thinking finished without output any content."
NO_SEARCH_RESULTS = "Web search returned no results."
TOOL_FAILURE_TEMPLATE = "Tool execution failed. Reason: {reason}"


class UIAnchor(Protocol):
    """Receives advisory progress notifications while a turn runs."""

    async def loading(self, message: str | None = None) -> None: ...


class InferenceOrchestrator:
    """
    Runs inference turns for one conversation session.

    Parameters
    ----------
    session : ConversationSession
        Conversation the turn's messages are appended to.
    router : ModelRouter
        Model registry used for streaming inference.
    registry : ToolRegistry
        Tools the model may call.
    settings : InferenceSettings
        Per-turn behaviour (fold, pacing, round limit, system info).
    anchor : UIAnchor, optional
        Progress notifications; nothing is reported when absent.
    memory : MemoryProvider, optional
        Source of the proactive memory block.
    """

    def __init__(
        self,
        session: ConversationSession,
        router: ModelRouter,
        registry: ToolRegistry,
        settings: InferenceSettings,
        anchor: UIAnchor | None = None,
        memory: MemoryProvider | None = None,
    ) -> None:
        self.session = session
        self.router = router
        self.registry = registry
        self.settings = settings
        self.anchor = anchor
        self.memory = memory

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _loading(self, message: str | None = None) -> None:
        if self.anchor is None:
            return
        try:
            await self.anchor.loading(message)
        except Exception:
            logger.exception("UI anchor failed")

    def _changed(self) -> None:
        self.session.notify_messages_did_change()

    def _checkpoint(self) -> None:
        self.session.notify_messages_did_change()
        self.session.save()

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def run(
        self,
        model_id: str,
        editor_object: EditorObject,
        request_messages: list[ChatMessage],
    ) -> None:
        """
        Process one user submission through as many rounds as the model needs.

        *request_messages* is the caller's request log; the system block, the
        user message and every round's assistant/tool messages are appended
        to it in place.
        """
        tools_enabled = self.settings.tools_enabled and self.router.model_supports_tools(
            model_id
        )
        tools = (self.registry.declarations() or None) if tools_enabled else None

        self.session.append_new_message(
            MessageRole.USER,
            lambda m: m.update("document", editor_object.text),
        )
        self._checkpoint()

        await inject_system_commands(
            request_messages,
            model_name=self.router.model_name(model_id),
            tools_enabled=tools_enabled,
            editor_object=editor_object,
            settings=self.settings,
            memory=self.memory,
            registry=self.registry,
        )
        merge_system_messages(request_messages)

        turn = TurnContext()
        for _ in range(self.settings.max_rounds):
            if not await self.execute_once(
                model_id, request_messages, tools, tools_enabled, turn
            ):
                break
        else:
            logger.warning(
                "Stopped after %d tool rounds without a final answer",
                self.settings.max_rounds,
            )
            self.session.append_new_message(
                MessageRole.HINT,
                lambda m: m.update(
                    "document",
                    f"Stopped after {self.settings.max_rounds} rounds of tool calls.",
                ),
            )
        self._checkpoint()

    async def execute_once(
        self,
        model_id: str,
        request_messages: list[ChatMessage],
        tools: list[dict] | None,
        tools_enabled: bool,
        turn: TurnContext,
    ) -> bool:
        """
        Run one streaming round and the tool calls it requested.

        Returns True when tool results were appended and the model must be
        invoked again.
        """
        await self._loading()
        message = self.session.append_new_message(MessageRole.ASSISTANT)
        self._changed()

        pending = await self._stream_response(model_id, request_messages, tools, message)
        if pending and not tools_enabled:
            logger.warning(
                "Ignoring %d tool call(s) from %s, tools are disabled for this turn",
                len(pending),
                model_id,
            )
            pending = []

        if message.document:
            message.update(
                "document", fix_web_references(message.document, turn.links)
            )
        if message.reasoning_content and not message.document:
            message.update("document", THINKING_WITHOUT_CONTENT)
        self._checkpoint()

        request_messages.append(ChatMessage.assistant(message.document, tool_calls=pending))

        if not message.document and not message.reasoning_content and not tools_enabled:
            raise EmptyResponseError()

        if not tools_enabled:
            return False

        pending = [r for r in pending if not is_wait_request(r.name)]
        if not pending:
            return False

        await self._loading("Utilizing tool call")
        for request in pending:
            await self._execute_tool(request, request_messages, turn)

        self._checkpoint()
        return True

    async def _stream_response(
        self,
        model_id: str,
        request_messages: list[ChatMessage],
        tools: list[dict] | None,
        message: Message,
    ) -> list[ToolCallRequest]:
        pending: list[ToolCallRequest] = []
        collapse = self.settings.collapse_reasoning_when_complete
        try:
            async for update in self.router.streaming_infer(
                model_id, request_messages, tools=tools
            ):
                pending.extend(update.tool_call_requests)
                message.update("reasoning_content", update.reasoning_content)
                message.update("document", update.content)

                if update.content:
                    self.session.stop_thinking(message.message_id)
                    if collapse:
                        message.update("is_thinking_fold", True)
                elif update.reasoning_content:
                    self.session.start_thinking(message.message_id)
                self._changed()
        except asyncio.CancelledError:
            logger.info("Inference cancelled, keeping partial response")
            message.update("incomplete", True)
            self.session.stop_thinking(message.message_id)
            self._checkpoint()
            raise
        finally:
            self.session.stop_thinking(message.message_id)

        if collapse:
            message.update("is_thinking_fold", True)
        logger.debug(
            "round finished: content=%d reasoning=%d tool_calls=%d",
            len(message.document),
            len(message.reasoning_content),
            len(pending),
        )
        return pending

    async def _execute_tool(
        self,
        request: ToolCallRequest,
        request_messages: list[ChatMessage],
        turn: TurnContext,
    ) -> None:
        resolved = self.registry.find_tool(request)
        if resolved is None:
            raise UnknownToolError(request.name)

        await self._loading(f"Utilizing tool: {resolved.interface_name}")
        if self.settings.tool_call_delay > 0:
            await asyncio.sleep(self.settings.tool_call_delay)

        if resolved.kind is ToolKind.WEB_SEARCH:
            await self._execute_web_search(resolved.tool, request, request_messages, turn)
        else:
            await self._execute_generic(resolved.tool, request, request_messages)

    async def _execute_web_search(
        self,
        tool: WebSearchTool,
        request: ToolCallRequest,
        request_messages: list[ChatMessage],
        turn: TurnContext,
    ) -> None:
        search_message = self.session.append_new_message(MessageRole.WEB_SEARCH)
        self._changed()

        documents = await tool.execute(
            request.args, self.session, search_message, self.anchor
        )
        search_message.update("web_documents", list(documents))
        blocks = [
            format_as_web_archive(doc.text_document, doc.title, turn.link_index(doc.url))
            for doc in documents
        ]
        await self._loading()
        self._changed()

        logger.info("web search returned %d documents", len(blocks))
        content = "\n".join(blocks) if blocks else NO_SEARCH_RESULTS
        request_messages.append(ChatMessage.tool(content, tool_call_id=request.id))

    async def _execute_generic(
        self,
        tool: Tool,
        request: ToolCallRequest,
        request_messages: list[ChatMessage],
    ) -> None:
        status = ToolStatus(name=tool.interface_name, state=ToolState.RUNNING)
        tool_message = self.session.append_new_message(
            MessageRole.TOOL_HINT,
            lambda m: m.update("tool_status", status),
        )
        self._changed()

        result = await self.registry.perform(tool, request.args)
        if result.success:
            status = ToolStatus(status.name, ToolState.SUCCEEDED, result.content)
            content = result.content
        else:
            reason = result.error or result.content
            logger.warning("tool %s failed: %s", tool.name, reason)
            status = ToolStatus(status.name, ToolState.FAILED, reason)
            content = TOOL_FAILURE_TEMPLATE.format(reason=reason)

        tool_message.update("tool_status", status)
        self._changed()
        request_messages.append(ChatMessage.tool(content, tool_call_id=request.id))
