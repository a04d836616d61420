"""Command-line interface for rolloutctl."""

import sys
from typing import Any

import click

from rolloutctl import __version__
from rolloutctl.commands.bluegreen import bluegreen
from rolloutctl.commands.canary import canary
from rolloutctl.commands.health import health
from rolloutctl.config import load_config
from rolloutctl.core.context import RolloutContext
from rolloutctl.core.exceptions import ConfigError, RolloutError
from rolloutctl.core.output import OutputFormat, error_console


def _to_output_format(ctx: click.Context, param: click.Parameter, value: str | None) -> OutputFormat | None:
    return OutputFormat(value.lower()) if value else None


@click.group(context_settings={"help_option_names": ["-h", "--help"], "max_content_width": 100})
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    envvar="ROLLOUTCTL_CONFIG",
    help="Config file merged over ~/.rolloutctl/config.yaml and ./rolloutctl.yaml",
)
@click.option(
    "-e",
    "--environment",
    envvar="ROLLOUTCTL_ENVIRONMENT",
    help="Environment to operate on (first configured one by default)",
)
@click.option(
    "-o",
    "--output",
    "output_format",
    type=click.Choice([f.value for f in OutputFormat], case_sensitive=False),
    callback=_to_output_format,
    help="Render state as a table or as json/yaml/raw wire data",
)
@click.option("-v", "--verbose", count=True, help="Log controller activity (-vv for debug)")
@click.option("-q", "--quiet", is_flag=True, help="Only print results and errors")
@click.option("--dry-run", is_flag=True, help="Do not save rollout state")
@click.option("--no-color", is_flag=True, help="Plain output for logs and pipes")
@click.version_option(__version__, "--version", prog_name="rolloutctl", message="%(prog)s version %(version)s")
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: str | None,
    environment: str | None,
    output_format: OutputFormat | None,
    verbose: int,
    quiet: bool,
    dry_run: bool,
    no_color: bool,
) -> None:
    """Drive blue-green switches and canary ramps for one environment.

    Every command loads the saved state for the selected environment,
    acts on it and saves it back, so a rollout can be moved on step by
    step from separate invocations.

    \b
    Examples:
        rolloutctl -e staging bluegreen deploy v1.4.0 --switch
        rolloutctl bluegreen rollback
        rolloutctl canary start v1.4.0 --baseline v1.3.2
        rolloutctl canary adjust 50
        rolloutctl -o json canary status
    """
    try:
        rollout_ctx = RolloutContext(
            config=load_config(config_file),
            environment=environment,
            output_format=output_format,
            verbose=verbose,
            quiet=quiet,
            dry_run=dry_run,
            color=not no_color,
        )
        # Resolve now so a typo fails before any command runs
        rollout_ctx.environment
    except ConfigError as e:
        error_console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    ctx.obj = rollout_ctx
    if dry_run:
        rollout_ctx.output.print_warning("Dry-run mode enabled - state will not be saved")


for command in (bluegreen, canary, health):
    cli.add_command(command)


@cli.command("config")
@click.pass_obj
def show_config(rollout_ctx: RolloutContext) -> None:
    """Show the effective configuration for the selected environment."""
    environment = rollout_ctx.environment
    settings: dict[str, Any] = {
        "project": rollout_ctx.config.project_name,
        "environment": {**environment.model_dump(mode="json"), "url": environment.get_url()},
        "state_dir": str(rollout_ctx.config.global_settings.get_state_dir()),
        "dry_run": rollout_ctx.dry_run,
        "blue_green": rollout_ctx.config.blue_green.model_dump(mode="json"),
        "canary": rollout_ctx.config.canary.model_dump(mode="json"),
    }
    rollout_ctx.output.print_data(settings, title=f"Configuration: {environment.name}")


def main() -> None:
    """Console-script entry point."""
    try:
        cli(prog_name="rolloutctl")
    except RolloutError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
