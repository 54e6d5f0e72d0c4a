"""Core types for the LLM subsystem."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

ROLE_SYSTEM = "system"
ROLE_DEVELOPER = "developer"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"

ROLES = (ROLE_SYSTEM, ROLE_DEVELOPER, ROLE_USER, ROLE_ASSISTANT, ROLE_TOOL)


@dataclass
class ContentPart:
    """
    One typed part of a multi-part message body.

    *kind* is ``"text"``, ``"image"`` or ``"audio"``.  Image parts carry a
    URL (``https://`` or ``data:``), audio parts carry base64 *data* plus a
    *format* such as ``"wav"``.
    """

    kind: str
    text: str = ""
    url: str = ""
    data: str = ""
    format: str = ""

    @classmethod
    def text_part(cls, text: str) -> ContentPart:
        return cls(kind="text", text=text)

    @classmethod
    def image_part(cls, url: str) -> ContentPart:
        return cls(kind="image", url=url)

    @classmethod
    def audio_part(cls, data: str, format: str = "wav") -> ContentPart:
        return cls(kind="audio", data=data, format=format)


@dataclass
class ToolCallRequest:
    """
    A tool invocation requested by the model.

    *args* is kept as the raw string the model produced (usually JSON); it is
    only parsed when the tool is performed.
    """

    name: str
    args: str = "{}"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class ChatMessage:
    """
    A single request-side message.

    *content* is either a plain string or an ordered list of ``ContentPart``.
    Only assistant messages carry *tool_calls*, only tool messages carry
    *tool_call_id*.  Use the role constructors rather than building the
    dataclass directly.
    """

    role: str
    content: str | list[ContentPart] = ""
    name: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")

    @classmethod
    def system(cls, content: str | list[ContentPart], name: str | None = None) -> ChatMessage:
        return cls(role=ROLE_SYSTEM, content=content, name=name)

    @classmethod
    def developer(cls, content: str | list[ContentPart], name: str | None = None) -> ChatMessage:
        return cls(role=ROLE_DEVELOPER, content=content, name=name)

    @classmethod
    def user(cls, content: str | list[ContentPart], name: str | None = None) -> ChatMessage:
        return cls(role=ROLE_USER, content=content, name=name)

    @classmethod
    def assistant(
        cls,
        content: str | list[ContentPart] = "",
        tool_calls: list[ToolCallRequest] | None = None,
        name: str | None = None,
    ) -> ChatMessage:
        return cls(
            role=ROLE_ASSISTANT,
            content=content,
            name=name,
            tool_calls=tool_calls or None,
        )

    @classmethod
    def tool(cls, content: str | list[ContentPart], tool_call_id: str) -> ChatMessage:
        return cls(role=ROLE_TOOL, content=content, tool_call_id=tool_call_id)

    @property
    def text(self) -> str:
        """Plain-text view of the content; non-text parts are skipped."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if p.kind == "text")


@dataclass
class StreamDelta:
    """
    An incremental piece of provider output.

    Exactly one of the fields is meaningful per delta: new *reasoning_content*
    text, new *content* text, or a finished *tool_call*.
    """

    content: str = ""
    reasoning_content: str = ""
    tool_call: ToolCallRequest | None = None


@dataclass
class InferenceUpdate:
    """
    Cumulative view of a streaming response, produced by the router.

    *content* and *reasoning_content* carry the running totals;
    *tool_call_requests* only carries the requests received with this update.
    """

    content: str = ""
    reasoning_content: str = ""
    tool_call_requests: list[ToolCallRequest] = field(default_factory=list)


@dataclass
class ChatRequest:
    messages: list[ChatMessage]
    tools: list[dict] | None = None
    max_completion_tokens: int = 4096
    temperature: float | None = None
    extra_body: dict = field(default_factory=dict)


@dataclass
class ChatResponse:
    """The complete assistant response of a non-streaming request."""

    content: str = ""
    reasoning_content: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
