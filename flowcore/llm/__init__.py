"""LLM subsystem -- providers, routing, token decoding and admission control."""

from flowcore.llm.types import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ContentPart,
    InferenceUpdate,
    StreamDelta,
    ToolCallRequest,
)
from flowcore.llm.admission import InferenceAdmissionQueue
from flowcore.llm.decoder import DecoderState, TokenStreamDecoder
from flowcore.llm.router import ModelRouter
from flowcore.llm.tool_call_assembler import RawToolDelta, ToolCallAssembler

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ContentPart",
    "DecoderState",
    "InferenceAdmissionQueue",
    "InferenceUpdate",
    "ModelRouter",
    "RawToolDelta",
    "StreamDelta",
    "TokenStreamDecoder",
    "ToolCallAssembler",
    "ToolCallRequest",
]
