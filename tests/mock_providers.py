"""
Mock chat providers and local runtimes for testing.

Provides canned responses so tests can exercise the router, the local
provider and the orchestrator without hitting real backends.
"""

from __future__ import annotations

import threading
import time
from typing import AsyncIterator, Callable, Sequence

from flowcore.llm.providers.base import ChatProvider
from flowcore.llm.providers.local import GenerateParameters, LocalRuntime
from flowcore.llm.types import ChatMessage, ChatRequest, StreamDelta, ToolCallRequest


class MockProvider(ChatProvider):
    """
    A provider that yields pre-configured ``StreamDelta`` objects.

    Usage::

        provider = MockProvider(rounds=[
            [StreamDelta(content="Hello "), StreamDelta(content="world!")],
        ])

    Each call to ``stream_complete`` consumes the next round; the last round
    is repeated once the list runs out.

    Parameters
    ----------
    rounds:
        One list of deltas per model invocation.
    error:
        Raised after the round's deltas have been yielded.
    """

    def __init__(
        self,
        rounds: list[list[StreamDelta]] | None = None,
        error: Exception | None = None,
        provider_name: str = "mock",
    ) -> None:
        super().__init__()
        self._rounds = rounds or [[]]
        self._error = error
        self._provider_name = provider_name
        self.call_count = 0
        self.requests: list[ChatRequest] = []

    @property
    def name(self) -> str:
        return self._provider_name

    @property
    def last_request(self) -> ChatRequest | None:
        return self.requests[-1] if self.requests else None

    async def stream_complete(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        self.requests.append(
            ChatRequest(
                messages=list(request.messages),
                tools=request.tools,
                max_completion_tokens=request.max_completion_tokens,
                temperature=request.temperature,
                extra_body=dict(request.extra_body),
            )
        )
        index = min(self.call_count, len(self._rounds) - 1)
        self.call_count += 1
        for delta in self._rounds[index]:
            yield delta
        if self._error is not None:
            self.error_collector.collect(str(self._error))
            raise self._error


class BlockingProvider(ChatProvider):
    """Yields *deltas* and then waits forever, for cancellation tests."""

    def __init__(self, deltas: list[StreamDelta]) -> None:
        super().__init__()
        self._deltas = deltas
        self.closed = False

    @property
    def name(self) -> str:
        return "blocking"

    async def stream_complete(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        import asyncio

        try:
            for delta in self._deltas:
                yield delta
            await asyncio.Event().wait()
        finally:
            self.closed = True


def text_round(text: str) -> list[StreamDelta]:
    """Deltas streaming *text* one word at a time."""
    words = text.split(" ")
    return [
        StreamDelta(content=w + (" " if i < len(words) - 1 else ""))
        for i, w in enumerate(words)
    ]


def reasoning_round(reasoning: str, text: str = "") -> list[StreamDelta]:
    deltas = [StreamDelta(reasoning_content=reasoning)]
    if text:
        deltas.extend(text_round(text))
    return deltas


def tool_round(*calls: tuple[str, str, str], content: str = "") -> list[StreamDelta]:
    """Deltas requesting ``(name, args, call_id)`` tool calls."""
    deltas = text_round(content) if content else []
    deltas.extend(
        StreamDelta(tool_call=ToolCallRequest(name=name, args=args, id=call_id))
        for name, args, call_id in calls
    )
    return deltas


# ---------------------------------------------------------------------------
# Local runtime doubles
# ---------------------------------------------------------------------------


class ScriptedRuntime(LocalRuntime):
    """
    A ``LocalRuntime`` whose vocabulary is a list of strings.

    Token ``i`` decodes to ``vocabulary[i]``; ``generate`` emits the tokens
    of *script* one step at a time.
    """

    def __init__(
        self,
        vocabulary: Sequence[str],
        script: Sequence[int],
        step_delay: float = 0.0,
        fail_at: int | None = None,
    ) -> None:
        self.vocabulary = list(vocabulary)
        self.script = list(script)
        self.step_delay = step_delay
        self.fail_at = fail_at
        self.steps = 0
        self.finished = threading.Event()
        self.prepared: list[ChatMessage] | None = None
        self.parameters: GenerateParameters | None = None

    def prepare(self, messages: list[ChatMessage], tools: list[dict] | None) -> list[int]:
        self.prepared = messages
        return []

    def decode(self, tokens: Sequence[int]) -> str:
        return "".join(self.vocabulary[t] for t in tokens)

    def generate(
        self,
        prompt: list[int],
        parameters: GenerateParameters,
        on_tokens: Callable[[list[int]], bool],
    ) -> str:
        self.parameters = parameters
        generated: list[int] = []
        try:
            for token in self.script:
                if self.fail_at is not None and self.steps == self.fail_at:
                    raise RuntimeError("runtime exploded")
                if self.step_delay:
                    time.sleep(self.step_delay)
                generated.append(token)
                self.steps += 1
                if not on_tokens(list(generated)):
                    break
            return self.decode(generated)
        finally:
            self.finished.set()


class ListTokenizer:
    """Tokenizer double: token ``i`` decodes to ``vocabulary[i]``."""

    def __init__(self, vocabulary: Sequence[str]) -> None:
        self.vocabulary = list(vocabulary)

    def decode(self, tokens: Sequence[int]) -> str:
        return "".join(self.vocabulary[t] for t in tokens)
