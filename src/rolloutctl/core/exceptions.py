"""Custom exceptions for rolloutctl."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rolloutctl.deploy.health import HealthResult


class RolloutError(Exception):
    """Base exception for all rolloutctl errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ConfigError(RolloutError):
    """Configuration-related errors."""

    pass


class ValidationError(RolloutError):
    """Input validation errors."""

    pass


class PreconditionError(RolloutError):
    """Operation not allowed in the controller's current state.

    Raised before any state is mutated. Retrying without changing the
    controller state will fail the same way.
    """

    pass


class SwitchInProgressError(PreconditionError):
    """A blue-green switch is already running."""

    def __init__(self, message: str = "Switch already in progress"):
        super().__init__(message)


class DeploymentError(RolloutError):
    """Deployment errors."""

    def __init__(
        self,
        message: str,
        slot: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.slot = slot


class UnhealthyTargetError(DeploymentError):
    """A deployment target failed its health check."""

    def __init__(
        self,
        message: str,
        slot: str | None = None,
        result: "HealthResult | None" = None,
    ):
        super().__init__(message, slot=slot)
        self.result = result


class RollbackFailedError(DeploymentError):
    """Rollback target is itself unhealthy.

    There is no further automatic fallback; an operator has to intervene.
    """

    pass


class TrafficError(RolloutError):
    """Traffic routing errors."""

    pass


class MetricsError(RolloutError):
    """Metrics backend errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class TimeoutError(RolloutError):
    """Operation timeout errors."""

    def __init__(
        self,
        message: str,
        timeout_seconds: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.timeout_seconds = timeout_seconds
