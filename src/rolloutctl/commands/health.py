"""Health check commands."""

import sys

import click

from rolloutctl.core.async_utils import run_sync
from rolloutctl.core.context import RolloutContext, pass_context
from rolloutctl.deploy.health import HealthProbe, HealthResult


@click.group()
@pass_context
def health(ctx: RolloutContext) -> None:
    """Health check operations.

    \b
    Examples:
        rolloutctl health check
        rolloutctl health check --slot green
        rolloutctl health check https://example.com --path /healthz
    """
    pass


@health.command("check")
@click.argument("url", required=False)
@click.option("--slot", type=click.Choice(["blue", "green"]), help="Probe a slot of the selected environment")
@click.option("--path", help="Health endpoint path (defaults to the blue-green health_check_url)")
@click.option("--timeout", type=float, help="Request timeout in seconds")
@pass_context
def check(
    ctx: RolloutContext,
    url: str | None,
    slot: str | None,
    path: str | None,
    timeout: float | None,
) -> None:
    """Probe a health endpoint once.

    URL defaults to the selected environment's URL. Exits with status 1
    when the target is unhealthy.
    """
    settings = ctx.config.blue_green
    if url is None:
        url = ctx.environment.slot_url(slot) if slot else ctx.environment.get_url()
    path = path if path is not None else settings.health_check_url
    timeout = timeout if timeout is not None else settings.health_check_timeout

    async def _probe() -> HealthResult:
        async with HealthProbe() as probe:
            return await probe.check(url, path, timeout)

    result = run_sync(_probe())

    if result.healthy:
        ctx.output.print_success(f"Health check passed: {url} ({result.response_time_ms:.0f}ms)")
    else:
        ctx.output.print_error(f"Health check failed: {url}: {result.error}")

    if ctx.verbose >= 1 or result.checks:
        ctx.output.print_data(result.to_dict(), title="Health")

    if not result.healthy:
        sys.exit(1)
