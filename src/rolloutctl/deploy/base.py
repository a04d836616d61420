"""Base class shared by the deployment controllers."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from rolloutctl.core.async_utils import run_with_timeout
from rolloutctl.core.exceptions import PreconditionError
from rolloutctl.core.logging import RolloutLogger, get_logger
from rolloutctl.deploy.models import DeploymentEvent, utcnow
from rolloutctl.deploy.scheduler import Mailbox

T = TypeVar("T")

EventListener = Callable[[DeploymentEvent], None]

MAX_EVENTS = 100


class DeploymentController(ABC):
    """Common plumbing for the blue-green and canary controllers.

    Every state-changing operation runs under ``_lock``. Background loops
    never mutate state directly: they post messages to the controller's
    mailbox, whose single worker handles them one at a time.
    """

    controller_name = "controller"

    def __init__(
        self,
        environment_name: str,
        listener: EventListener | None = None,
    ):
        self.environment_name = environment_name
        self.events: list[DeploymentEvent] = []
        self._listener = listener
        self._lock = asyncio.Lock()
        self._mailbox = Mailbox(f"{self.controller_name}-mailbox", self._handle_message)
        self._closed = False
        self.log = RolloutLogger(get_logger(type(self).__module__)).bind(
            controller=self.controller_name,
            environment=environment_name,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def is_enabled(self) -> bool:
        """Whether the controller's config allows it to act."""
        pass

    @abstractmethod
    async def _handle_message(self, message: Any) -> None:
        """Handle a message posted by a background loop."""
        pass

    @abstractmethod
    async def _stop_loops(self) -> None:
        """Stop every periodic task owned by the controller."""
        pass

    def _require_open(self) -> None:
        if self._closed:
            raise PreconditionError(f"{self.controller_name} controller is closed")

    def _require_enabled(self) -> None:
        self._require_open()
        if not self.is_enabled():
            raise PreconditionError(f"{self.controller_name} deployments are disabled")

    def _emit(self, event_type: str, message: str, details: dict[str, Any] | None = None) -> None:
        """Record an event and forward it to the listener."""
        event = DeploymentEvent(
            timestamp=utcnow(),
            event_type=event_type,
            message=message,
            details=details or {},
        )
        self.events.append(event)
        if len(self.events) > MAX_EVENTS:
            self.events = self.events[-MAX_EVENTS:]

        if self._listener:
            try:
                self._listener(event)
            except Exception as e:
                self.log.warning(f"Event listener failed: {e}")

    async def _call(self, coro: Awaitable[T], timeout: float, what: str) -> T:
        """Await a capability call bounded by ``timeout`` seconds."""
        return await run_with_timeout(coro, timeout, f"{what} timed out after {timeout}s")

    async def drain(self) -> None:
        """Wait until every queued background message has been handled."""
        await self._mailbox.join()

    async def close(self) -> None:
        """Stop all background work. No callback fires after this returns."""
        self._closed = True
        await self._stop_loops()
        await self._mailbox.stop()

    async def __aenter__(self) -> "DeploymentController":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
