"""Tests for flowcore.llm.admission.InferenceAdmissionQueue."""

from __future__ import annotations

import asyncio

import pytest

from flowcore.llm.admission import InferenceAdmissionQueue


class TestMutualExclusion:
    async def test_acquire_returns_distinct_tokens(self):
        queue = InferenceAdmissionQueue()
        first = await queue.acquire()
        queue.release(first)
        second = await queue.acquire()
        assert first != second
        assert queue.holders == 1
        assert queue.is_held(second)
        assert not queue.is_held(first)

    async def test_second_acquire_waits_for_release(self):
        queue = InferenceAdmissionQueue()
        token = await queue.acquire()

        waiter = asyncio.create_task(queue.acquire())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        queue.release(token)
        second = await asyncio.wait_for(waiter, timeout=1)
        assert queue.is_held(second)
        assert queue.holders == 1

    async def test_holders_never_exceed_one(self):
        queue = InferenceAdmissionQueue()
        active = 0
        peak = 0

        async def worker():
            nonlocal active, peak
            token = await queue.acquire()
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.001)
            active -= 1
            queue.release(token)

        await asyncio.gather(*(worker() for _ in range(10)))
        assert peak == 1
        assert queue.holders == 0


class TestRelease:
    async def test_double_release_is_noop(self):
        queue = InferenceAdmissionQueue()
        token = await queue.acquire()
        queue.release(token)
        queue.release(token)

        held = await queue.acquire()
        waiter = asyncio.create_task(queue.acquire())
        await asyncio.sleep(0.01)
        # A double release must not have let a second caller in.
        assert not waiter.done()

        queue.release(held)
        queue.release(await asyncio.wait_for(waiter, timeout=1))
        assert queue.holders == 0

    async def test_unknown_token_is_ignored(self):
        queue = InferenceAdmissionQueue()
        token = await queue.acquire()
        queue.release("not-a-token")
        assert queue.is_held(token)
        queue.release(token)

    async def test_cancelled_waiter_does_not_leak_permit(self):
        queue = InferenceAdmissionQueue()
        token = await queue.acquire()

        waiter = asyncio.create_task(queue.acquire())
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        queue.release(token)
        again = await asyncio.wait_for(queue.acquire(), timeout=1)
        assert queue.holders == 1
        queue.release(again)


def test_shared_returns_same_instance():
    assert InferenceAdmissionQueue.shared() is InferenceAdmissionQueue.shared()
