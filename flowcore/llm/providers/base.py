"""Abstract base class for chat providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from flowcore.llm.types import ChatRequest, ChatResponse, StreamDelta


class ErrorCollector:
    """
    Holds the last error message reported by a backend.

    This is a diagnostic side channel (e.g. the raw body of a rejected API
    call); the actual failure still propagates as an exception.
    """

    def __init__(self) -> None:
        self._error: str | None = None

    def collect(self, error: str | None) -> None:
        self._error = error

    def get(self) -> str | None:
        return self._error

    def clear(self) -> None:
        self._error = None


class ChatProvider(ABC):
    """
    A provider encapsulates access to a single model backend.

    Implementations must support:
      - Streaming chat completions (``stream_complete``) yielding incremental
        ``StreamDelta`` objects.  The stream is consumer-driven: when the
        consumer stops pulling or is cancelled, the backend stops its work.
      - Non-streaming completions (``complete``).  The default drains the
        stream.
    """

    def __init__(self) -> None:
        self.error_collector = ErrorCollector()

    @abstractmethod
    async def stream_complete(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        """Yield ``StreamDelta`` objects until the response is complete."""
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        # This line is unreachable but satisfies the type checker.
        if False:  # pragma: no cover
            yield StreamDelta()  # type: ignore[misc]

    async def complete(self, request: ChatRequest) -> ChatResponse:
        content: list[str] = []
        reasoning: list[str] = []
        response = ChatResponse()
        async for delta in self.stream_complete(request):
            if delta.reasoning_content:
                reasoning.append(delta.reasoning_content)
            if delta.content:
                content.append(delta.content)
            if delta.tool_call is not None:
                response.tool_calls.append(delta.tool_call)
        response.content = "".join(content)
        response.reasoning_content = "".join(reasoning)
        return response

    @property
    def collected_error(self) -> str | None:
        return self.error_collector.get()

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. ``"openai-compat"``)."""
        ...
