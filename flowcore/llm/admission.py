"""
Process-wide admission control for the local model runtime.

The local runtime shares one decode context, so two generations must never
overlap.  ``InferenceAdmissionQueue`` hands out opaque tokens: ``acquire``
waits until nobody else holds one, ``release`` lets the next waiter in.
Releasing a token twice, or a token that was never issued, does nothing.

Both methods must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

logger = logging.getLogger(__name__)


class InferenceAdmissionQueue:
    """Binary semaphore plus the set of outstanding tokens."""

    _shared: InferenceAdmissionQueue | None = None

    def __init__(self) -> None:
        self._semaphore = asyncio.Semaphore(1)
        self._running: set[str] = set()

    @classmethod
    def shared(cls) -> InferenceAdmissionQueue:
        """Return the process-wide queue used by local providers by default."""
        if cls._shared is None:
            cls._shared = cls()
        return cls._shared

    async def acquire(self) -> str:
        token = str(uuid.uuid4())
        logger.debug("admission acquire token: %s", token)
        await self._semaphore.acquire()
        self._running.add(token)
        return token

    def release(self, token: str) -> None:
        if token not in self._running:
            return
        self._running.discard(token)
        logger.debug("admission release token: %s", token)
        self._semaphore.release()

    @property
    def holders(self) -> int:
        """Number of acquired-and-not-yet-released tokens (0 or 1)."""
        return len(self._running)

    def is_held(self, token: str) -> bool:
        return token in self._running
