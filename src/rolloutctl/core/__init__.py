"""Core utilities and shared components for rolloutctl."""

# Note: Import context lazily to avoid circular imports
# Use: from rolloutctl.core.context import RolloutContext, pass_context
from rolloutctl.core.exceptions import (
    ConfigError,
    DeploymentError,
    PreconditionError,
    RolloutError,
    ValidationError,
)
from rolloutctl.core.output import OutputFormatter, console

__all__ = [
    "RolloutError",
    "ConfigError",
    "DeploymentError",
    "PreconditionError",
    "ValidationError",
    "OutputFormatter",
    "console",
]
