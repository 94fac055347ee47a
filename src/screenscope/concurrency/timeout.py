"""Race an awaitable operation against a deadline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from screenscope.errors.exceptions import AIError
from screenscope.types import ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_ms: int | None,
) -> T:
    """Run ``operation`` and settle exactly once: its result, its error, or TIMEOUT.

    On timeout the in-flight task is cancelled best-effort; the remote side
    may still finish, but the caller proceeds as failed. A ``timeout_ms`` of
    None or <= 0 disables the deadline.
    """
    if not timeout_ms or timeout_ms <= 0:
        return await operation()

    task = asyncio.ensure_future(operation())
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_consume_abandoned)
    logger.debug("Operation abandoned after %dms", timeout_ms)
    raise AIError(
        ErrorKind.TIMEOUT,
        f"Request timed out after {timeout_ms}ms",
    )


def _consume_abandoned(task: asyncio.Future) -> None:
    # Retrieve the outcome so an abandoned task never logs "exception was never retrieved"
    if not task.cancelled():
        exc = task.exception()
        if exc is not None:
            logger.debug("Abandoned operation later failed: %s", exc)
