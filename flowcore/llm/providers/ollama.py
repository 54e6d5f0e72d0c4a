"""
Ollama provider.

Streams responses from a local Ollama instance via its ``/api/chat`` endpoint.
Thinking models report their reasoning in ``message.thinking``; tool calls
arrive complete in ``message.tool_calls``.

Dependencies: ``httpx``.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

import httpx

from flowcore.llm.providers.base import ChatProvider
from flowcore.llm.types import ChatMessage, ChatRequest, StreamDelta, ToolCallRequest
from flowcore.types import InferenceError

logger = logging.getLogger(__name__)


class OllamaProvider(ChatProvider):
    """
    Provider for a local `Ollama <https://ollama.com>`_ instance.

    Parameters
    ----------
    url:
        Base URL of the Ollama HTTP API (e.g. ``"http://localhost:11434"``).
    model:
        Model tag, e.g. ``"qwen3"`` or ``"llama3.1"``.
    timeout:
        HTTP request timeout in seconds.
    transport:
        Optional ``httpx`` transport (used by tests).
    """

    def __init__(
        self,
        url: str = "http://localhost:11434",
        model: str = "qwen3",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self._url = url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "ollama"

    async def stream_complete(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        body = self._build_body(request)
        self.error_collector.clear()
        async for delta in self._stream_request(body):
            yield delta

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_body(self, request: ChatRequest) -> dict:
        wire_messages: list[dict] = [self._wire_message(m) for m in request.messages]

        options: dict = {"num_predict": request.max_completion_tokens}
        if request.temperature is not None:
            options["temperature"] = request.temperature

        body: dict = {
            "model": self._model,
            "messages": wire_messages,
            "stream": True,
            "options": options,
        }
        if request.tools:
            body["tools"] = request.tools
        body.update(request.extra_body)
        return body

    @staticmethod
    def _wire_message(msg: ChatMessage) -> dict:
        m: dict = {"role": msg.role, "content": msg.text}

        if not isinstance(msg.content, str):
            images = [p.url.split(",", 1)[-1] for p in msg.content if p.kind == "image"]
            if images:
                m["images"] = images

        if msg.tool_calls:
            m["tool_calls"] = []
            for tc in msg.tool_calls:
                try:
                    arguments = json.loads(tc.args or "{}")
                except json.JSONDecodeError:
                    arguments = {}
                m["tool_calls"].append(
                    # Ollama expects a dict, not a string
                    {"function": {"name": tc.name, "arguments": arguments}}
                )
        return m

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _stream_request(self, body: dict) -> AsyncIterator[StreamDelta]:
        """
        Ollama streams newline-delimited JSON objects from ``/api/chat``.
        Each line is a complete JSON object.
        """
        url = f"{self._url}/api/chat"

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            async with client.stream("POST", url, json=body) as response:
                if response.is_error:
                    await response.aread()
                    self.error_collector.collect(response.text)
                    response.raise_for_status()

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue

                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning("Ollama: failed to parse line: %s", line[:200])
                        continue

                    if data.get("error"):
                        self.error_collector.collect(str(data["error"]))
                        raise InferenceError(f"Ollama error: {data['error']}")

                    for delta in self._data_to_deltas(data):
                        yield delta

                    if data.get("done"):
                        return

    def _data_to_deltas(self, data: dict) -> list[StreamDelta]:
        """Convert a single Ollama JSON object to stream deltas."""
        message = data.get("message") or {}
        deltas: list[StreamDelta] = []

        thinking = message.get("thinking") or ""
        if thinking:
            deltas.append(StreamDelta(reasoning_content=thinking))

        content = message.get("content") or ""
        if content:
            deltas.append(StreamDelta(content=content))

        for tc in message.get("tool_calls") or []:
            func = tc.get("function", {})
            deltas.append(
                StreamDelta(
                    tool_call=ToolCallRequest(
                        name=func.get("name", ""),
                        args=json.dumps(func.get("arguments", {})),
                    )
                )
            )
        return deltas
