"""
Assembles streaming tool-call fragments into ``ToolCallRequest`` objects.

OpenAI-style backends stream a tool call as several fragments sharing an
``index``: the first usually carries the id and (part of) the function name,
later ones append to the argument string.  The assembler accumulates them
per index and produces finished requests on ``finish()``.

Arguments are *not* parsed here -- they stay an opaque string until a tool
is performed.  A buffer that never received a function name is dropped and
an error is recorded in ``self.errors``.
"""

from __future__ import annotations

from dataclasses import dataclass

from flowcore.llm.types import ToolCallRequest


@dataclass
class RawToolDelta:
    """One streamed tool-call fragment."""

    call_index: int
    id: str | None = None
    name_delta: str = ""
    args_delta: str = ""


class ToolCallAssembler:
    """Buffers raw tool-call deltas and emits finished ``ToolCallRequest``s."""

    def __init__(self) -> None:
        self._buf: dict[int, dict] = {}
        self.errors: list[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, delta: RawToolDelta) -> None:
        buf = self._buf.setdefault(
            delta.call_index, {"id": None, "name": "", "args": ""}
        )

        if delta.id and not buf["id"]:
            buf["id"] = delta.id

        if delta.name_delta:
            buf["name"] += delta.name_delta

        if delta.args_delta:
            buf["args"] += delta.args_delta

    @property
    def pending(self) -> bool:
        return bool(self._buf)

    def finish(self) -> list[ToolCallRequest]:
        """
        Finalize all buffered calls in index order and clear the buffers.
        """
        calls: list[ToolCallRequest] = []
        for idx in sorted(self._buf):
            call = self._finalize(idx, self._buf[idx])
            if call is not None:
                calls.append(call)
        self._buf.clear()
        return calls

    def reset(self) -> None:
        """Discard all accumulated state."""
        self._buf.clear()
        self.errors.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finalize(self, idx: int, buf: dict) -> ToolCallRequest | None:
        name = buf["name"].strip()
        if not name:
            self.errors.append(f"tool_call_missing_name idx={idx}")
            return None

        args = buf["args"].strip() or "{}"
        if buf["id"]:
            return ToolCallRequest(name=name, args=args, id=buf["id"])
        return ToolCallRequest(name=name, args=args)
