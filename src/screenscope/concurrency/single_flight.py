"""Coalesce concurrent identical computations into one in-flight call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Keyed map of in-flight futures.

    The first caller for a key runs the computation; callers arriving while
    it is in flight await the same future and receive its result or error.
    The key is released as soon as the computation settles, so later calls
    start fresh.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future[T]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """Run ``fn`` once per concurrent ``key``.

        Returns ``(result, shared)`` where ``shared`` is True for callers that
        joined an existing flight. The computation runs as its own task, so a
        cancelled caller (the first one included) only stops waiting; the
        flight settles for everyone else.
        """
        existing = self._inflight.get(key)
        if existing is not None:
            logger.debug("Joining in-flight computation for %s", key)
            return await asyncio.shield(existing), True

        task: asyncio.Future[T] = asyncio.ensure_future(fn())
        self._inflight[key] = task
        task.add_done_callback(lambda done: self._release(key, done))
        return await asyncio.shield(task), False

    def _release(self, key: str, flight: asyncio.Future[T]) -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]
