"""
OpenAI-compatible chat-completion provider.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol -- OpenAI itself, OpenRouter, vLLM, LM Studio, LocalAI, etc.
Reasoning text is read from ``delta.reasoning_content`` (DeepSeek, vLLM) or
``delta.reasoning`` (OpenRouter).

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

import httpx

from flowcore.llm.providers.base import ChatProvider
from flowcore.llm.tool_call_assembler import RawToolDelta, ToolCallAssembler
from flowcore.llm.types import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ContentPart,
    StreamDelta,
    ToolCallRequest,
)
from flowcore.types import InferenceError

logger = logging.getLogger(__name__)


def _wire_part(part: ContentPart) -> dict:
    if part.kind == "image":
        return {"type": "image_url", "image_url": {"url": part.url}}
    if part.kind == "audio":
        return {
            "type": "input_audio",
            "input_audio": {"data": part.data, "format": part.format or "wav"},
        }
    return {"type": "text", "text": part.text}


def _wire_message(msg: ChatMessage) -> dict:
    if isinstance(msg.content, str):
        content: str | list[dict] = msg.content
    else:
        content = [_wire_part(p) for p in msg.content]

    m: dict = {"role": msg.role, "content": content}
    if msg.name:
        m["name"] = msg.name
    if msg.tool_calls:
        m["tool_calls"] = [
            {
                "id": tc.id,
                "type": "function",
                "function": {"name": tc.name, "arguments": tc.args},
            }
            for tc in msg.tool_calls
        ]
    if msg.tool_call_id:
        m["tool_call_id"] = msg.tool_call_id
    return m


class OpenAICompatProvider(ChatProvider):
    """
    Stream-capable provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"`` or
        ``"http://localhost:8080/v1"``.
    model:
        Model identifier sent in the ``model`` field.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        HTTP request timeout in seconds.
    max_retries:
        Number of automatic retries on transient HTTP errors (5xx, 429)
        before any data has been streamed.
    transport:
        Optional ``httpx`` transport (used by tests).
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self._url = url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "openai-compat"

    async def stream_complete(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        body = self._build_body(request, stream=True)
        headers = self._build_headers()
        self.error_collector.clear()
        async for delta in self._stream_request(body, headers):
            yield delta

    async def complete(self, request: ChatRequest) -> ChatResponse:
        body = self._build_body(request, stream=False)
        headers = self._build_headers()
        self.error_collector.clear()
        return await self._sync_request(body, headers)

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(self, request: ChatRequest, stream: bool) -> dict:
        wire_messages = [_wire_message(m) for m in request.messages]

        body: dict = {
            "model": self._model,
            "messages": wire_messages,
            "stream": stream,
            "max_completion_tokens": request.max_completion_tokens,
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.tools:
            body["tools"] = request.tools
            body["tool_choice"] = "auto"
        body.update(request.extra_body)
        logger.info(
            "REQUEST: model=%s tools=%d messages=%d",
            self._model,
            len(request.tools) if request.tools else 0,
            len(wire_messages),
        )
        return body

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _record_failure(self, response: httpx.Response) -> None:
        """Keep the error body for diagnostics, then raise."""
        text = response.text
        logger.warning("HTTP %s from %s: %s", response.status_code, self._url, text[:500])
        self.error_collector.collect(text or f"HTTP {response.status_code}")
        response.raise_for_status()

    # ------------------------------------------------------------------
    # Streaming request
    # ------------------------------------------------------------------

    async def _stream_request(
        self,
        body: dict,
        headers: dict[str, str],
    ) -> AsyncIterator[StreamDelta]:
        url = f"{self._url}/chat/completions"

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            try:
                async with self._client() as client:
                    async with client.stream(
                        "POST", url, json=body, headers=headers
                    ) as response:
                        if response.status_code == 429 or response.status_code >= 500:
                            # Retryable -- read body so the connection is released.
                            await response.aread()
                            self.error_collector.collect(response.text)
                            last_error = httpx.HTTPStatusError(
                                f"HTTP {response.status_code}",
                                request=response.request,
                                response=response,
                            )
                            continue

                        if response.is_error:
                            await response.aread()
                            await self._record_failure(response)

                        async for delta in self._parse_sse_stream(response):
                            yield delta
                        return  # success
            except httpx.TransportError as exc:
                last_error = exc
                self.error_collector.collect(str(exc))
                if attempt < self._max_retries:
                    continue
                raise

        if last_error is not None:
            raise last_error

    async def _parse_sse_stream(
        self, response: httpx.Response
    ) -> AsyncIterator[StreamDelta]:
        """
        Parse Server-Sent Events from the response line stream.

        Each SSE event has the form::

            data: {json}\\n\\n

        The sentinel ``data: [DONE]`` terminates the stream.
        """
        assembler = ToolCallAssembler()
        async for line in response.aiter_lines():
            line = line.rstrip("\r")
            if not line or not line.startswith("data:"):
                continue

            data_str = line[len("data:"):].strip()
            if data_str == "[DONE]":
                break

            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                logger.warning("Failed to parse SSE data: %s", data_str[:200])
                continue

            if "error" in data:
                message = json.dumps(data["error"])
                self.error_collector.collect(message)
                raise InferenceError(message)

            for delta in self._sse_data_to_deltas(data, assembler):
                yield delta

        # Calls still buffered when the stream ends are finished as-is.
        for call in assembler.finish():
            yield StreamDelta(tool_call=call)
        if assembler.errors:
            logger.warning("Tool-call assembly errors: %s", assembler.errors)

    def _sse_data_to_deltas(
        self, data: dict, assembler: ToolCallAssembler
    ) -> list[StreamDelta]:
        """Convert a parsed SSE ``data`` payload into stream deltas."""
        choices = data.get("choices")
        if not choices:
            return []

        choice = choices[0]
        delta = choice.get("delta") or {}
        deltas: list[StreamDelta] = []

        reasoning = delta.get("reasoning_content") or delta.get("reasoning") or ""
        if reasoning:
            deltas.append(StreamDelta(reasoning_content=reasoning))

        content = delta.get("content") or ""
        if content:
            deltas.append(StreamDelta(content=content))

        for raw_tc in delta.get("tool_calls") or []:
            func = raw_tc.get("function") or {}
            assembler.feed(
                RawToolDelta(
                    call_index=raw_tc.get("index", 0),
                    id=raw_tc.get("id"),
                    name_delta=func.get("name") or "",
                    args_delta=func.get("arguments") or "",
                )
            )

        # OpenAI signals finish_reason="tool_calls" once all fragments are in.
        if choice.get("finish_reason") is not None and assembler.pending:
            deltas.extend(StreamDelta(tool_call=c) for c in assembler.finish())

        return deltas

    # ------------------------------------------------------------------
    # Non-streaming request
    # ------------------------------------------------------------------

    async def _sync_request(
        self,
        body: dict,
        headers: dict[str, str],
    ) -> ChatResponse:
        url = f"{self._url}/chat/completions"

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            try:
                async with self._client() as client:
                    resp = await client.post(url, json=body, headers=headers)

                    if resp.status_code == 429 or resp.status_code >= 500:
                        self.error_collector.collect(resp.text)
                        last_error = httpx.HTTPStatusError(
                            f"HTTP {resp.status_code}",
                            request=resp.request,
                            response=resp,
                        )
                        continue

                    if resp.is_error:
                        await self._record_failure(resp)
                    data = resp.json()
            except httpx.TransportError as exc:
                last_error = exc
                self.error_collector.collect(str(exc))
                if attempt < self._max_retries:
                    continue
                raise
            else:
                return self._parse_non_stream(data)

        if last_error is not None:
            raise last_error
        # Should never reach here.
        raise RuntimeError("unreachable")  # pragma: no cover

    def _parse_non_stream(self, data: dict) -> ChatResponse:
        """Convert a non-streaming response into a ``ChatResponse``."""
        choices = data.get("choices", [])
        if not choices:
            return ChatResponse()

        message = choices[0].get("message", {})
        tool_calls: list[ToolCallRequest] = []
        for raw_tc in message.get("tool_calls") or []:
            func = raw_tc.get("function", {})
            call = ToolCallRequest(
                name=func.get("name", ""),
                args=func.get("arguments") or "{}",
            )
            if raw_tc.get("id"):
                call.id = raw_tc["id"]
            tool_calls.append(call)

        return ChatResponse(
            content=message.get("content") or "",
            reasoning_content=(
                message.get("reasoning_content") or message.get("reasoning") or ""
            ),
            tool_calls=tool_calls,
        )
