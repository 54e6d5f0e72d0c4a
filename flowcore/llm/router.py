"""
Model router -- the registry of usable models and the entry point for
inference.

The router is what the rest of flowcore talks to when it needs a model
response.  It:

  1. Knows every registered model: its provider, display name, whether it
     supports tool calls, and its default request fields.
  2. Streams ``StreamDelta`` objects from the model's provider and turns
     them into cumulative ``InferenceUpdate`` snapshots (running content and
     reasoning totals plus any newly requested tool calls).
  3. Makes sure an abandoned stream is closed so providers can stop their
     work (and local providers give back their admission token).
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator

from flowcore.llm.providers.base import ChatProvider
from flowcore.llm.types import ChatMessage, ChatRequest, ChatResponse, InferenceUpdate

logger = logging.getLogger(__name__)


@dataclass
class ModelEntry:
    model_id: str
    provider: ChatProvider
    display_name: str = ""
    supports_tools: bool = False
    max_completion_tokens: int = 4096
    temperature: float | None = None
    extra_body: dict = field(default_factory=dict)


class ModelRouter:
    """
    Routes chat requests to the provider registered for a model id.
    """

    def __init__(self) -> None:
        self._models: dict[str, ModelEntry] = {}
        self._active: str | None = None

    # ------------------------------------------------------------------
    # Model management
    # ------------------------------------------------------------------

    def register_model(
        self,
        model_id: str,
        provider: ChatProvider,
        *,
        display_name: str = "",
        supports_tools: bool = False,
        max_completion_tokens: int = 4096,
        temperature: float | None = None,
        extra_body: dict | None = None,
    ) -> ModelEntry:
        """Register a model under *model_id*.  Overwrites any existing entry."""
        entry = ModelEntry(
            model_id=model_id,
            provider=provider,
            display_name=display_name or model_id,
            supports_tools=supports_tools,
            max_completion_tokens=max_completion_tokens,
            temperature=temperature,
            extra_body=dict(extra_body or {}),
        )
        self._models[model_id] = entry
        if self._active is None:
            self._active = model_id
        return entry

    def set_active(self, model_id: str) -> None:
        """
        Switch the default model.

        Raises ``KeyError`` if *model_id* has not been registered.
        """
        self.entry(model_id)
        self._active = model_id

    @property
    def active_model(self) -> str:
        """
        Return the default model id.

        Raises ``RuntimeError`` if no model is registered.
        """
        if self._active is None:
            raise RuntimeError("No model registered")
        return self._active

    @property
    def model_ids(self) -> list[str]:
        return list(self._models)

    def entry(self, model_id: str) -> ModelEntry:
        try:
            return self._models[model_id]
        except KeyError:
            raise KeyError(
                f"Unknown model {model_id!r}. "
                f"Registered: {list(self._models)}"
            ) from None

    # ------------------------------------------------------------------
    # Capability lookup
    # ------------------------------------------------------------------

    def model_supports_tools(self, model_id: str) -> bool:
        return self.entry(model_id).supports_tools

    def model_name(self, model_id: str) -> str:
        return self.entry(model_id).display_name

    def collected_error(self, model_id: str) -> str | None:
        """Last error body reported by the model's backend, if any."""
        return self.entry(model_id).provider.collected_error

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def _build_request(
        self,
        entry: ModelEntry,
        messages: list[ChatMessage],
        tools: list[dict] | None,
        extra_fields: dict | None,
    ) -> ChatRequest:
        return ChatRequest(
            messages=list(messages),
            tools=tools,
            max_completion_tokens=entry.max_completion_tokens,
            temperature=entry.temperature,
            extra_body={**entry.extra_body, **(extra_fields or {})},
        )

    async def streaming_infer(
        self,
        model_id: str,
        messages: list[ChatMessage],
        tools: list[dict] | None = None,
        extra_fields: dict | None = None,
    ) -> AsyncIterator[InferenceUpdate]:
        """
        Stream cumulative ``InferenceUpdate`` snapshots for one request.

        Each update carries the full content/reasoning received so far; tool
        call requests are reported once, with the update they arrived in.
        """
        entry = self.entry(model_id)
        request = self._build_request(entry, messages, tools, extra_fields)
        content = ""
        reasoning = ""

        logger.debug(
            "streaming inference: model=%s provider=%s messages=%d tools=%d",
            model_id,
            entry.provider.name,
            len(request.messages),
            len(tools) if tools else 0,
        )
        async with aclosing(entry.provider.stream_complete(request)) as stream:
            async for delta in stream:
                content += delta.content
                reasoning += delta.reasoning_content
                calls = [delta.tool_call] if delta.tool_call is not None else []
                yield InferenceUpdate(
                    content=content,
                    reasoning_content=reasoning,
                    tool_call_requests=calls,
                )

    async def infer(
        self,
        model_id: str,
        messages: list[ChatMessage],
        tools: list[dict] | None = None,
        extra_fields: dict | None = None,
    ) -> ChatResponse:
        """Run a non-streaming request and return the complete response."""
        entry = self.entry(model_id)
        request = self._build_request(entry, messages, tools, extra_fields)
        return await entry.provider.complete(request)
