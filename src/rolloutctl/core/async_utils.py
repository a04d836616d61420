"""Async utilities for controller operations."""

import asyncio
import concurrent.futures
from collections.abc import Awaitable
from typing import TypeVar

from rolloutctl.core.exceptions import TimeoutError

T = TypeVar("T")


async def run_with_timeout(
    coro: Awaitable[T],
    timeout: float | None,
    timeout_message: str = "Operation timed out",
) -> T:
    """Run a coroutine with a timeout.

    Args:
        coro: Coroutine to run
        timeout: Timeout in seconds, None for no limit
        timeout_message: Message for timeout error

    Returns:
        Result of the coroutine

    Raises:
        TimeoutError: If the operation times out
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        raise TimeoutError(timeout_message, timeout_seconds=timeout)


def run_sync(coro: Awaitable[T]) -> T:
    """Run an async function synchronously.

    This is useful for integrating async code with Click commands.

    Args:
        coro: Coroutine to run

    Returns:
        Result of the coroutine
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        # Already inside an event loop, run on a fresh one in a worker thread
        with concurrent.futures.ThreadPoolExecutor() as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    else:
        return asyncio.run(coro)
