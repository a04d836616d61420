"""Blue-green command group."""

from typing import Any

import click

from rolloutctl.core.async_utils import run_sync
from rolloutctl.core.context import RolloutContext, pass_context
from rolloutctl.core.exceptions import RolloutError
from rolloutctl.deploy.blue_green import BlueGreenController
from rolloutctl.deploy.models import BlueGreenState

CONTROLLER = "blue-green"


def _load_state(ctx: RolloutContext) -> BlueGreenState | None:
    data = ctx.state_store.load(ctx.environment.name, CONTROLLER)
    return BlueGreenState.from_dict(data) if data else None


def _build_controller(ctx: RolloutContext) -> BlueGreenController:
    return BlueGreenController(
        ctx.config.blue_green,
        ctx.environment,
        deployer=ctx.deployer,
        router=ctx.router,
        initial_state=_load_state(ctx),
    )


def _run(ctx: RolloutContext, action: str, operation: Any) -> BlueGreenState:
    """Run ``operation(controller)`` and persist the resulting state.

    State is saved whether the operation succeeds or fails, so a slot
    marked failed stays failed on the next invocation.
    """

    async def _execute() -> BlueGreenState:
        async with _build_controller(ctx) as controller:
            try:
                await operation(controller)
            finally:
                ctx.save_state(CONTROLLER, controller.get_state().to_dict())
            return controller.get_state()

    try:
        return run_sync(_execute())
    except RolloutError as e:
        ctx.output.print_error(f"{action} failed: {e}")
        raise click.Abort()


def _print_state(ctx: RolloutContext, state: BlueGreenState) -> None:
    ctx.output.print_blue_green(state, title=f"Blue-Green: {ctx.environment.name}")


@click.group()
@pass_context
def bluegreen(ctx: RolloutContext) -> None:
    """Blue-green deployments - deploy, switch, rollback, status.

    \b
    Examples:
        rolloutctl bluegreen deploy v1.4.0
        rolloutctl bluegreen deploy v1.4.0 --switch
        rolloutctl bluegreen switch
        rolloutctl bluegreen rollback
        rolloutctl bluegreen status
    """
    pass


@bluegreen.command("deploy")
@click.argument("version")
@click.option("--switch", "switch_after", is_flag=True, help="Switch traffic after a healthy deploy")
@pass_context
def deploy(ctx: RolloutContext, version: str, switch_after: bool) -> None:
    """Deploy VERSION to the standby slot.

    \b
    Examples:
        rolloutctl bluegreen deploy v1.4.0
        rolloutctl -e staging bluegreen deploy v1.4.0 --switch
    """

    async def operation(controller: BlueGreenController) -> None:
        await controller.deploy_to_standby(version)
        if switch_after:
            await controller.switch_environments()

    ctx.log_dry_run("deploy", {"version": version, "switch": switch_after})
    state = _run(ctx, "Deployment", operation)

    if switch_after:
        ctx.output.print_success(f"Deployed {version} and switched traffic to {state.active_environment.value}")
    else:
        ctx.output.print_success(f"Deployed {version} to {state.standby_environment.value}")
    _print_state(ctx, state)


@bluegreen.command("switch")
@pass_context
def switch(ctx: RolloutContext) -> None:
    """Switch traffic to the standby slot."""

    async def operation(controller: BlueGreenController) -> None:
        await controller.switch_environments()

    state = _run(ctx, "Switch", operation)
    ctx.output.print_success(f"Traffic now routing to {state.active_environment.value}")
    _print_state(ctx, state)


@bluegreen.command("rollback")
@pass_context
def rollback(ctx: RolloutContext) -> None:
    """Move traffic back to the previous slot."""

    async def operation(controller: BlueGreenController) -> None:
        await controller.rollback()

    state = _run(ctx, "Rollback", operation)
    ctx.output.print_success(f"Rolled back to {state.active_environment.value}")
    _print_state(ctx, state)


@bluegreen.command("status")
@pass_context
def status(ctx: RolloutContext) -> None:
    """Show the saved blue-green state."""
    try:
        state = _load_state(ctx) or BlueGreenState()
    except RolloutError as e:
        ctx.output.print_error(f"Failed to get status: {e}")
        raise click.Abort()

    _print_state(ctx, state)
