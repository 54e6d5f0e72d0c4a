"""
Incremental decoding of a local generation loop into stream deltas.

A local runtime reports the *whole* token list generated so far on every
step.  ``TokenStreamDecoder`` turns that into the minimal new piece of text,
tagged as reasoning or regular content:

  - ``<think>`` / ``</think>`` arriving as the latest token flips the mode and
    is swallowed.
  - Leading whitespace is trimmed after every mode switch (and at the start).
  - Trailing terminator strings are stripped and reported as ``should_stop``.

All cross-call state lives in ``DecoderState`` so the decoder itself holds
nothing but the tokenizer.  Lengths are character counts of the decoded text,
never token or byte counts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from flowcore.llm.types import StreamDelta

logger = logging.getLogger(__name__)

REASONING_START_TOKEN = "<think>"
REASONING_END_TOKEN = "</think>"

# Emitted by detokenizers while a multi-byte character is only half decoded.
DECODER_ERROR_SUFFIX = "\ufffd"

DEFAULT_TERMINATORS: tuple[str, ...] = (
    "<|im_end|>",
    "<|endoftext|>",
    "<|eot_id|>",
    "<|end|>",
    "<end_of_turn>",
)


class Tokenizer(Protocol):
    def decode(self, tokens: Sequence[int]) -> str: ...


@dataclass
class DecoderState:
    is_reasoning: bool = False
    previous_length: int = 0
    remove_leading_whitespace: bool = True


@dataclass
class DecodeResult:
    delta: StreamDelta | None = None
    should_stop: bool = False


def strip_decoder_errors(text: str) -> str:
    while text.endswith(DECODER_ERROR_SUFFIX):
        text = text[: -len(DECODER_ERROR_SUFFIX)]
    return text


def strip_terminators(text: str, terminators: Sequence[str]) -> tuple[str, bool]:
    """Remove every trailing repeat of each terminator.

    Returns the cleaned text and whether anything was removed.
    """
    terminated = False
    for terminator in terminators:
        if not terminator:
            continue
        while text.endswith(terminator):
            text = text[: -len(terminator)]
            terminated = True
    return text, terminated


class TokenStreamDecoder:
    """Stateless decoder; callers own and pass in a ``DecoderState``."""

    def __init__(
        self,
        tokenizer: Tokenizer,
        terminators: Sequence[str] = DEFAULT_TERMINATORS,
    ) -> None:
        self.tokenizer = tokenizer
        self.terminators = tuple(terminators)

    def decode(self, tokens: Sequence[int], state: DecoderState) -> DecodeResult:
        """Process the full token list of the current generation step."""
        text = strip_decoder_errors(self.tokenizer.decode(tokens))

        if tokens and self._toggle_reasoning(tokens[-1], state):
            state.remove_leading_whitespace = True
            state.previous_length = len(text)
            return DecodeResult()

        text, should_stop = strip_terminators(text, self.terminators)
        delta = self.make_chunk(text, state)
        state.previous_length = len(text)
        return DecodeResult(delta=delta, should_stop=should_stop)

    def finalize(self, output: str, state: DecoderState) -> StreamDelta | None:
        """Flush whatever the final output holds beyond the last step."""
        text = strip_decoder_errors(output)
        text, _ = strip_terminators(text, self.terminators)
        delta = self.make_chunk(text, state)
        state.previous_length = max(state.previous_length, len(text))
        return delta

    def make_chunk(self, text: str, state: DecoderState) -> StreamDelta | None:
        if state.previous_length >= len(text):
            return None
        chunk = text[state.previous_length:]

        if state.remove_leading_whitespace:
            chunk = chunk.lstrip()
            state.remove_leading_whitespace = not chunk

        if not chunk:
            return None
        if state.is_reasoning:
            return StreamDelta(reasoning_content=chunk)
        return StreamDelta(content=chunk)

    def _toggle_reasoning(self, last_token: int, state: DecoderState) -> bool:
        text = self.tokenizer.decode([last_token]).strip()
        if not state.is_reasoning and text == REASONING_START_TOKEN:
            logger.info("starting reasoning with token %s", text)
            state.is_reasoning = True
            return True
        if state.is_reasoning and text == REASONING_END_TOKEN:
            logger.info("end reasoning with token %s", text)
            state.is_reasoning = False
            return True
        return False
