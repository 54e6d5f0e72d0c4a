"""Tests for flowcore.llm.providers.local.LocalRuntimeProvider."""

from __future__ import annotations

import asyncio

import pytest

from flowcore.llm.admission import InferenceAdmissionQueue
from flowcore.llm.providers.local import LocalRuntimeProvider, load_runtime
from flowcore.llm.types import ChatMessage, ChatRequest
from tests.mock_providers import ScriptedRuntime


def _request(max_tokens: int = 4096) -> ChatRequest:
    return ChatRequest(
        messages=[ChatMessage.user("hi")],
        max_completion_tokens=max_tokens,
    )


async def _wait_released(queue: InferenceAdmissionQueue) -> None:
    for _ in range(200):
        if queue.holders == 0:
            return
        await asyncio.sleep(0.01)
    pytest.fail("admission token was never released")


async def _collect(provider: LocalRuntimeProvider, request: ChatRequest):
    return [d async for d in provider.stream_complete(request)]


class TestStreaming:
    async def test_streams_content_until_terminator(self):
        runtime = ScriptedRuntime(["Hello", " world", "<|im_end|>", "never"], [0, 1, 2, 3])
        queue = InferenceAdmissionQueue()
        provider = LocalRuntimeProvider(runtime, admission=queue)

        deltas = await _collect(provider, _request())

        assert "".join(d.content for d in deltas) == "Hello world"
        assert runtime.steps == 3
        assert runtime.prepared[0].text == "hi"
        await _wait_released(queue)

    async def test_reasoning_is_separated(self):
        runtime = ScriptedRuntime(
            ["<think>", "plan it", "</think>", "\nanswer"], [0, 1, 2, 3]
        )
        queue = InferenceAdmissionQueue()
        provider = LocalRuntimeProvider(runtime, admission=queue)

        deltas = await _collect(provider, _request())

        assert "".join(d.reasoning_content for d in deltas) == "plan it"
        assert "".join(d.content for d in deltas) == "answer"
        await _wait_released(queue)

    async def test_length_limit_ends_stream_normally(self):
        runtime = ScriptedRuntime(["abc"], [0] * 10)
        queue = InferenceAdmissionQueue()
        provider = LocalRuntimeProvider(runtime, admission=queue)

        deltas = await _collect(provider, _request(max_tokens=6))

        assert "".join(d.content for d in deltas) == "abcabc"
        assert runtime.steps == 2
        assert runtime.parameters.max_tokens == 6
        assert provider.collected_error is None
        await _wait_released(queue)


class TestRelease:
    async def test_token_released_when_consumer_stops(self):
        runtime = ScriptedRuntime(["tick "], [0] * 500, step_delay=0.005)
        queue = InferenceAdmissionQueue()
        provider = LocalRuntimeProvider(runtime, admission=queue)

        stream = provider.stream_complete(_request())
        first = await stream.__anext__()
        assert first.content == "tick"
        assert queue.holders == 1
        await stream.aclose()

        assert await asyncio.to_thread(runtime.finished.wait, 5)
        assert runtime.steps < 500
        await _wait_released(queue)

    async def test_token_released_when_task_cancelled(self):
        runtime = ScriptedRuntime(["tick "], [0] * 500, step_delay=0.005)
        queue = InferenceAdmissionQueue()
        provider = LocalRuntimeProvider(runtime, admission=queue)

        task = asyncio.create_task(_collect(provider, _request()))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await asyncio.to_thread(runtime.finished.wait, 5)
        await _wait_released(queue)

    async def test_runtime_error_propagates_and_releases(self):
        runtime = ScriptedRuntime(["Hello", " world"], [0, 1], fail_at=1)
        queue = InferenceAdmissionQueue()
        provider = LocalRuntimeProvider(runtime, admission=queue)

        received = []
        with pytest.raises(RuntimeError, match="runtime exploded"):
            async for delta in provider.stream_complete(_request()):
                received.append(delta)

        assert [d.content for d in received] == ["Hello"]
        assert provider.collected_error == "runtime exploded"
        await _wait_released(queue)

    async def test_generations_do_not_overlap(self):
        queue = InferenceAdmissionQueue()
        runtimes = [ScriptedRuntime(["x"], [0] * 5, step_delay=0.002) for _ in range(3)]
        providers = [LocalRuntimeProvider(r, admission=queue) for r in runtimes]
        peak = 0

        async def run(provider):
            nonlocal peak
            async for _ in provider.stream_complete(_request()):
                peak = max(peak, queue.holders)

        await asyncio.gather(*(run(p) for p in providers))
        assert peak == 1
        assert all(r.steps == 5 for r in runtimes)
        await _wait_released(queue)


class FakeEntryPoint:
    def __init__(self, name, factory):
        self.name = name
        self.value = f"tests:{name}"
        self._factory = factory

    def load(self):
        return self._factory


def fake_entry_points(*eps):
    def lookup(group):
        assert group == "flowcore.runtimes"
        return list(eps)

    return lookup


class TestLoadRuntime:
    def test_loads_named_runtime_with_options(self, monkeypatch):
        def factory(vocabulary=(), script=()):
            return ScriptedRuntime(vocabulary, script)

        monkeypatch.setattr(
            "flowcore.llm.providers.local.entry_points",
            fake_entry_points(FakeEntryPoint("other", None), FakeEntryPoint("tiny", factory)),
        )
        runtime = load_runtime("tiny", {"vocabulary": ["a"], "script": [0]})
        assert isinstance(runtime, ScriptedRuntime)
        assert runtime.vocabulary == ["a"]

    def test_unknown_runtime(self, monkeypatch):
        monkeypatch.setattr("flowcore.llm.providers.local.entry_points", fake_entry_points())
        with pytest.raises(LookupError, match="tiny"):
            load_runtime("tiny")
