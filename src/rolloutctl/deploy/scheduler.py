"""Background loops owned by a controller instance.

Each controller creates its own ``PeriodicTask`` and ``Mailbox`` objects and
stops them on close, so nothing keeps firing after teardown.
"""

import asyncio
import contextlib
import contextvars
from collections.abc import Awaitable, Callable
from typing import Any

from rolloutctl.core.async_utils import run_with_timeout
from rolloutctl.core.logging import get_logger

logger = get_logger(__name__)

# Loop whose callback is currently running; inherited by tasks spawned from it
_current_owner: contextvars.ContextVar[object | None] = contextvars.ContextVar(
    "rolloutctl_loop_owner", default=None
)


async def _stop_task(owner: object, task: asyncio.Task[Any]) -> None:
    """Cancel a task and wait for it to finish.

    A loop stopping itself from inside its own callback is left to exit
    once the callback returns.
    """
    if _current_owner.get() is owner:
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class PeriodicTask:
    """Run ``callback`` every ``interval`` seconds until stopped.

    The first run happens one interval after ``start()``. Each run is bounded
    by ``tick_timeout`` (defaults to the interval) and its errors are logged,
    so one failing or stalled tick never stops the loop.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[Any]],
        tick_timeout: float | None = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be greater than 0")
        self.name = name
        self.interval = interval
        self.tick_timeout = tick_timeout or interval
        self._callback = callback
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.debug(f"Started periodic task {self.name} (every {self.interval}s)")

    async def stop(self) -> None:
        """Stop the loop and wait for it to exit."""
        task = self._task
        self._task = None
        if task is None:
            return
        await _stop_task(self, task)
        logger.debug(f"Stopped periodic task {self.name}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self._task is not asyncio.current_task():
                return
            self.ticks += 1
            token = _current_owner.set(self)
            try:
                await run_with_timeout(
                    self._callback(),
                    self.tick_timeout,
                    f"{self.name} tick timed out after {self.tick_timeout}s",
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"{self.name} tick failed: {e}")
            finally:
                _current_owner.reset(token)
            if self._task is not asyncio.current_task():
                return


class Mailbox:
    """Single-consumer message queue.

    Messages posted from timer callbacks are handled one at a time, in
    order, by a single worker task.
    """

    def __init__(self, name: str, handler: Callable[[Any], Awaitable[None]]):
        self.name = name
        self._handler = handler
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def post(self, message: Any) -> None:
        """Queue a message, starting the worker on first use."""
        self._queue.put_nowait(message)
        if not self.running:
            self._task = asyncio.create_task(self._run(), name=self.name)

    async def join(self) -> None:
        """Wait until every posted message has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Stop the worker and drop pending messages."""
        task = self._task
        self._task = None
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        if task is not None:
            await _stop_task(self, task)

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            token = _current_owner.set(self)
            try:
                await self._handler(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name} failed to handle {type(message).__name__}: {e}")
            finally:
                _current_owner.reset(token)
                self._queue.task_done()
            if self._task is not asyncio.current_task():
                return
