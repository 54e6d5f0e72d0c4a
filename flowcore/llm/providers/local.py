"""
On-device runtime provider.

Drives a blocking, step-callback generation loop (``LocalRuntime``) from
asyncio:

  1. Waits for an admission token -- only one local generation may run at a
     time in the whole process.
  2. Runs ``prepare`` + ``generate`` in a worker thread.  Every step the
     runtime reports all tokens generated so far; ``TokenStreamDecoder``
     turns them into reasoning/content deltas which are handed back to the
     event loop through an ``asyncio.Queue``.
  3. Stops generating when the decoder sees a terminator, when regular
     content reaches ``max_completion_tokens`` characters, or when the
     consumer goes away (the stop event is checked on every step).
  4. Releases the admission token once the worker thread has finished,
     whatever the exit path.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import AsyncIterator, Callable, Sequence

from flowcore.llm.admission import InferenceAdmissionQueue
from flowcore.llm.decoder import (
    DEFAULT_TERMINATORS,
    DecoderState,
    TokenStreamDecoder,
)
from flowcore.llm.providers.base import ChatProvider
from flowcore.llm.types import ChatMessage, ChatRequest, StreamDelta

logger = logging.getLogger(__name__)

_END = object()


@dataclass
class GenerateParameters:
    max_tokens: int = 4096
    temperature: float | None = None


class LocalRuntime(ABC):
    """
    A loaded on-device model.

    Implementations wrap whatever inference library hosts the weights.  All
    methods are blocking and are only ever called from the provider's worker
    thread, one generation at a time.
    """

    @abstractmethod
    def prepare(self, messages: list[ChatMessage], tools: list[dict] | None) -> list[int]:
        """Apply the chat template and return the prompt tokens."""
        ...

    @abstractmethod
    def decode(self, tokens: Sequence[int]) -> str:
        ...

    @abstractmethod
    def generate(
        self,
        prompt: list[int],
        parameters: GenerateParameters,
        on_tokens: Callable[[list[int]], bool],
    ) -> str:
        """
        Run the generation loop.

        *on_tokens* receives every token generated so far after each step;
        when it returns ``False`` the loop must stop.  Returns the complete
        decoded output.
        """
        ...


def load_runtime(
    name: str, options: dict | None = None, group: str = "flowcore.runtimes"
) -> LocalRuntime:
    """
    Instantiate the runtime advertised as *name* in the *group* entry point
    group.  *options* are passed to the factory as keyword arguments.

    Raises ``LookupError`` when no such entry point is installed.
    """
    for ep in entry_points(group=group):
        if ep.name == name:
            factory = ep.load()
            logger.info("loading local runtime %s from %s", name, ep.value)
            return factory(**(options or {}))
    raise LookupError(f"No local runtime named {name!r} in entry point group {group!r}")


class LocalRuntimeProvider(ChatProvider):
    """
    Provider for a ``LocalRuntime``.

    Parameters
    ----------
    runtime:
        The loaded model.
    admission:
        Admission queue guarding the runtime.  Defaults to the process-wide
        ``InferenceAdmissionQueue.shared()``.
    terminators:
        Trailing strings that end generation.
    """

    def __init__(
        self,
        runtime: LocalRuntime,
        admission: InferenceAdmissionQueue | None = None,
        terminators: Sequence[str] = DEFAULT_TERMINATORS,
    ) -> None:
        super().__init__()
        self.runtime = runtime
        self.admission = admission or InferenceAdmissionQueue.shared()
        self._decoder = TokenStreamDecoder(runtime, terminators)

    @property
    def name(self) -> str:
        return "local"

    async def stream_complete(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        token = await self.admission.acquire()
        loop = asyncio.get_running_loop()
        outbox: asyncio.Queue = asyncio.Queue()
        stop = threading.Event()
        worker: asyncio.Future | None = None
        self.error_collector.clear()

        def post(item: object) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(outbox.put_nowait, item)

        def on_worker_done(fut: asyncio.Future) -> None:
            self.admission.release(token)
            if not fut.cancelled() and fut.exception() is not None:
                logger.debug("local generation ended with %r", fut.exception())

        try:
            worker = loop.run_in_executor(None, self._generate, request, stop, post)
            while True:
                item = await outbox.get()
                if item is _END:
                    break
                yield item
            await worker
        except Exception as exc:
            logger.error("local inference failed: %s", exc)
            self.error_collector.collect(str(exc))
            raise
        finally:
            stop.set()
            if worker is None:
                self.admission.release(token)
            else:
                worker.add_done_callback(on_worker_done)

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _generate(
        self,
        request: ChatRequest,
        stop: threading.Event,
        post: Callable[[object], None],
    ) -> None:
        state = DecoderState()
        limit = request.max_completion_tokens
        content_length = 0

        def on_tokens(tokens: list[int]) -> bool:
            nonlocal content_length
            result = self._decoder.decode(tokens, state)
            if result.delta is not None:
                content_length += len(result.delta.content)
                post(result.delta)

            if result.should_stop:
                return False
            if content_length >= limit:
                logger.info("reached max completion tokens: %d", content_length)
                return False
            if stop.is_set():
                logger.debug("cancelling current inference, consumer went away")
                return False
            return True

        try:
            prompt = self.runtime.prepare(request.messages, request.tools)
            parameters = GenerateParameters(
                max_tokens=limit,
                temperature=request.temperature,
            )
            output = self.runtime.generate(prompt, parameters, on_tokens)

            if not stop.is_set():
                final = self._decoder.finalize(output, state)
                if final is not None:
                    post(final)
            logger.info(
                "inference completed, total output length: %d, regular content: %d",
                len(output),
                content_length,
            )
        finally:
            post(_END)
