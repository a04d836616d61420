"""Canary command group."""

import asyncio
from typing import Any

import click

from rolloutctl.core.async_utils import run_sync
from rolloutctl.core.context import RolloutContext, pass_context
from rolloutctl.core.exceptions import RolloutError
from rolloutctl.deploy.canary import CanaryController
from rolloutctl.deploy.models import CanaryState, CanaryStatus, DeploymentEvent

CONTROLLER = "canary"
WAIT_POLL_INTERVAL = 1.0


def _load_state(ctx: RolloutContext) -> CanaryState | None:
    data = ctx.state_store.load(ctx.environment.name, CONTROLLER)
    return CanaryState.from_dict(data) if data else None


def _run(
    ctx: RolloutContext,
    action: str,
    operation: Any,
    restore: bool = True,
) -> CanaryState:
    """Run ``operation(controller)`` and persist the resulting state."""

    def on_event(event: DeploymentEvent) -> None:
        ctx.logger.info(event.message, event=event.event_type)

    async def _execute() -> CanaryState:
        controller = CanaryController(
            ctx.config.canary,
            ctx.environment,
            router=ctx.router,
            listener=on_event,
            initial_state=_load_state(ctx) if restore else None,
        )
        async with controller:
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


def _print_state(ctx: RolloutContext, state: CanaryState) -> None:
    ctx.output.print_canary(state, title=f"Canary: {ctx.environment.name}")


@click.group()
@pass_context
def canary(ctx: RolloutContext) -> None:
    """Canary deployments - start, adjust, promote, rollback, status.

    \b
    Examples:
        rolloutctl canary start v1.4.0 --baseline v1.3.2 --wait
        rolloutctl canary adjust 50
        rolloutctl canary promote
        rolloutctl canary rollback
        rolloutctl canary status
    """
    pass


@canary.command("start")
@click.argument("version")
@click.option("--baseline", required=True, help="Version currently serving traffic")
@click.option("--wait", is_flag=True, help="Drive the rollout until it completes or rolls back")
@pass_context
def start(ctx: RolloutContext, version: str, baseline: str, wait: bool) -> None:
    """Start a canary rollout of VERSION.

    Without --wait the split is applied and saved; use adjust, promote
    or rollback to move it on. With --wait the command stays in the
    foreground, ramping traffic every increment interval and polling
    metrics until the canary completes or rolls back.

    \b
    Examples:
        rolloutctl canary start v1.4.0 --baseline v1.3.2
        rolloutctl canary start v1.4.0 --baseline v1.3.2 --wait
    """

    async def operation(controller: CanaryController) -> None:
        await controller.start_canary(version, baseline)
        if wait:
            while controller.get_state().status.is_live:
                await asyncio.sleep(WAIT_POLL_INTERVAL)

    ctx.log_dry_run("start canary", {"version": version, "baseline": baseline})

    try:
        existing = _load_state(ctx)
    except RolloutError as e:
        ctx.output.print_error(f"Failed to read canary state: {e}")
        raise click.Abort()

    if existing and existing.status.is_live:
        ctx.output.print_error(
            f"Canary {existing.version} is still {existing.status.value}; promote or rollback it first"
        )
        raise click.Abort()

    state = _run(ctx, "Canary start", operation, restore=False)

    if state.status.is_live:
        ctx.output.print_success(f"Canary {version} receiving {state.traffic_percentage}% of traffic")
    elif state.status is CanaryStatus.COMPLETED:
        ctx.output.print_success(f"Canary {version} promoted to 100%")
    else:
        ctx.output.print_warning(f"Canary {version} rolled back to {baseline}")
    _print_state(ctx, state)


@canary.command("adjust")
@click.argument("percentage", type=int)
@pass_context
def adjust(ctx: RolloutContext, percentage: int) -> None:
    """Set the canary's share of traffic to PERCENTAGE."""

    async def operation(controller: CanaryController) -> None:
        await controller.adjust_traffic(percentage)

    state = _run(ctx, "Traffic adjustment", operation)
    ctx.output.print_success(f"Canary {state.version} receiving {state.traffic_percentage}% of traffic")


@canary.command("pause")
@pass_context
def pause(ctx: RolloutContext) -> None:
    """Pause a running canary."""

    async def operation(controller: CanaryController) -> None:
        await controller.pause_canary()

    state = _run(ctx, "Pause", operation)
    ctx.output.print_success(f"Canary {state.version} paused at {state.traffic_percentage}%")


@canary.command("resume")
@pass_context
def resume(ctx: RolloutContext) -> None:
    """Resume a paused canary."""

    async def operation(controller: CanaryController) -> None:
        await controller.resume_canary()

    state = _run(ctx, "Resume", operation)
    ctx.output.print_success(f"Canary {state.version} resumed at {state.traffic_percentage}%")


@canary.command("promote")
@pass_context
def promote(ctx: RolloutContext) -> None:
    """Route all traffic to the canary."""

    async def operation(controller: CanaryController) -> None:
        await controller.complete_canary()

    state = _run(ctx, "Promotion", operation)
    ctx.output.print_success(f"Canary {state.version} promoted to 100%")


@canary.command("rollback")
@pass_context
def rollback(ctx: RolloutContext) -> None:
    """Route all traffic back to the baseline."""

    async def operation(controller: CanaryController) -> None:
        await controller.rollback_canary()

    state = _run(ctx, "Rollback", operation)
    ctx.output.print_success(f"Rolled back to {state.baseline_version}")


@canary.command("status")
@pass_context
def status(ctx: RolloutContext) -> None:
    """Show the saved canary state."""
    try:
        state = _load_state(ctx) or CanaryState()
    except RolloutError as e:
        ctx.output.print_error(f"Failed to get status: {e}")
        raise click.Abort()

    _print_state(ctx, state)
