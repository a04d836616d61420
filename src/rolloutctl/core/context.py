"""Click context object for sharing state across commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import click

from rolloutctl.config import EnvironmentConfig, RolloutConfig, get_default_config
from rolloutctl.core.logging import LogLevel, RolloutLogger, get_logger, setup_logging
from rolloutctl.core.output import OutputFormat, OutputFormatter

if TYPE_CHECKING:
    from rolloutctl.deploy.capabilities import Deployer, TrafficRouter
    from rolloutctl.deploy.state import StateStore


class RolloutContext:
    """Shared context object for rolloutctl commands.

    This object is passed through Click's context mechanism and provides
    access to configuration, the selected environment, capabilities and
    the state store.
    """

    def __init__(
        self,
        config: RolloutConfig | None = None,
        environment: str | None = None,
        output_format: OutputFormat | None = None,
        verbose: int = 0,
        quiet: bool = False,
        dry_run: bool = False,
        color: bool = True,
    ):
        self._config = config or get_default_config()
        self._environment_name = environment

        # Output settings (CLI overrides config)
        self._output_format = output_format or self._config.global_settings.output_format
        self._verbose = verbose
        self._quiet = quiet
        self._dry_run = dry_run or self._config.global_settings.dry_run
        self._color = color

        log_level = LogLevel.from_flags(verbose, quiet, self._config.global_settings.verbosity)
        setup_logging(log_level, rich_output=color)
        self._logger = RolloutLogger(get_logger("cli"))

        self._output = OutputFormatter(
            format=self._output_format,
            color=color,
            quiet=quiet,
        )

        # Lazy-loaded
        self._state_store: StateStore | None = None
        self._deployer: Deployer | None = None
        self._router: TrafficRouter | None = None

    @property
    def config(self) -> RolloutConfig:
        """Get the loaded configuration."""
        return self._config

    @property
    def environment(self) -> EnvironmentConfig:
        """Get the selected environment (first configured one by default)."""
        return self._config.get_environment(self._environment_name)

    @property
    def output(self) -> OutputFormatter:
        return self._output

    @property
    def output_format(self) -> OutputFormat:
        return self._output_format

    @property
    def dry_run(self) -> bool:
        """Check if dry-run mode is enabled."""
        return self._dry_run

    @property
    def verbose(self) -> int:
        return self._verbose

    @property
    def quiet(self) -> bool:
        return self._quiet

    @property
    def logger(self) -> RolloutLogger:
        return self._logger

    @property
    def state_store(self) -> "StateStore":
        """Get or create the state store."""
        if self._state_store is None:
            from rolloutctl.deploy.state import StateStore

            self._state_store = StateStore(self._config.global_settings.get_state_dir())
        return self._state_store

    @property
    def deployer(self) -> "Deployer":
        """Deployer used by CLI commands."""
        if self._deployer is None:
            from rolloutctl.deploy.capabilities import DryRunDeployer

            self._deployer = DryRunDeployer()
        return self._deployer

    @deployer.setter
    def deployer(self, value: "Deployer") -> None:
        self._deployer = value

    @property
    def router(self) -> "TrafficRouter":
        """Traffic router used by CLI commands."""
        if self._router is None:
            from rolloutctl.deploy.capabilities import DryRunTrafficRouter

            self._router = DryRunTrafficRouter()
        return self._router

    @router.setter
    def router(self, value: "TrafficRouter") -> None:
        self._router = value

    def save_state(self, controller: str, state: dict[str, Any]) -> None:
        """Persist a controller snapshot unless in dry-run mode."""
        if self._dry_run:
            self.log_dry_run(f"save {controller} state", {"environment": self.environment.name})
            return
        self.state_store.save(self.environment.name, controller, state)

    def log_dry_run(self, action: str, details: dict[str, Any] | None = None) -> None:
        """Log a dry-run action."""
        if self._dry_run:
            msg = f"[dry-run] {action}"
            if details:
                detail_str = ", ".join(f"{k}={v}" for k, v in details.items())
                msg = f"{msg} ({detail_str})"
            self._output.print(f"[dim]{msg}[/dim]")


# Click decorator for passing context
pass_context = click.make_pass_decorator(RolloutContext, ensure=True)
