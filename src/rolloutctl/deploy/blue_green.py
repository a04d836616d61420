"""Blue-Green deployment controller."""

import asyncio
from typing import Any

from rolloutctl.config import BlueGreenConfig, EnvironmentConfig
from rolloutctl.core.exceptions import (
    PreconditionError,
    RollbackFailedError,
    SwitchInProgressError,
    UnhealthyTargetError,
    ValidationError,
)
from rolloutctl.core.output import format_duration
from rolloutctl.deploy.base import DeploymentController, EventListener
from rolloutctl.deploy.capabilities import Deployer, TrafficRouter
from rolloutctl.deploy.health import HealthProbe, HealthResult
from rolloutctl.deploy.models import (
    BlueGreenState,
    HealthCheckFailed,
    Slot,
    SlotStatus,
    utcnow,
)
from rolloutctl.deploy.scheduler import PeriodicTask

# Extra time a monitor tick gets beyond the health check timeout
MONITOR_TICK_MARGIN = 1.0


class BlueGreenController(DeploymentController):
    """Manages the blue and green slots of one environment.

    Drives deploy -> warmup -> health check -> promote -> monitor, with
    automatic rollback when ``rollback_on_failure`` is set.
    """

    controller_name = "blue-green"

    def __init__(
        self,
        config: BlueGreenConfig,
        environment: EnvironmentConfig,
        deployer: Deployer,
        router: TrafficRouter,
        probe: HealthProbe | None = None,
        listener: EventListener | None = None,
        initial_state: BlueGreenState | None = None,
    ):
        super().__init__(environment.name, listener)
        self.config = config
        self.environment = environment
        self._deployer = deployer
        self._router = router
        self._probe = probe or HealthProbe()
        self._owns_probe = probe is None
        self._state = initial_state.copy() if initial_state else BlueGreenState()
        self._state.switch_in_progress = False
        self._monitor: PeriodicTask | None = None
        self.monitored_slot: Slot | None = None
        self.fatal_error: RollbackFailedError | None = None

    def is_enabled(self) -> bool:
        return self.config.enabled

    def get_state(self) -> BlueGreenState:
        """Return a snapshot of the current state."""
        return self._state.copy()

    @property
    def monitoring(self) -> bool:
        return self._monitor is not None and self._monitor.running

    def slot_url(self, slot: Slot) -> str:
        return self.environment.slot_url(slot.value)

    async def health_check(self, slot: Slot) -> HealthResult:
        """Probe the health endpoint of a slot."""
        return await self._probe.check(
            self.slot_url(slot),
            self.config.health_check_url,
            self.config.health_check_timeout,
        )

    async def deploy_to_standby(self, version: str) -> BlueGreenState:
        """Deploy a version to the slot that is not serving traffic.

        Args:
            version: Version to deploy

        Returns:
            State snapshot after the deployment

        Raises:
            UnhealthyTargetError: If the slot fails its post-warmup health check
        """
        self._require_enabled()
        if not version:
            raise ValidationError("Version must not be empty")
        if self._state.switch_in_progress:
            raise PreconditionError("Cannot deploy while a switch is in progress")

        async with self._lock:
            target = self._state.standby_environment
            log = self.log.bind(slot=target.value, version=version)
            log.info("Deploying to standby slot")

            self._state.set_status(target, SlotStatus.DEPLOYING)
            self._emit("deploying", f"Deploying {version} to {target.value}", {"slot": target.value, "version": version})

            try:
                await self._call(
                    self._deployer.deploy(target, version),
                    self.config.operation_timeout,
                    f"Deployment to {target.value}",
                )
                await self._warmup(target)

                result = await self.health_check(target)
                if not result.healthy:
                    raise UnhealthyTargetError(
                        f"Health check failed for {target.value}: {result.error}",
                        slot=target.value,
                        result=result,
                    )

            except Exception as e:
                self._state.set_status(target, SlotStatus.FAILED)
                self._emit("deploy_failed", f"Deployment to {target.value} failed: {e}", {"slot": target.value, "version": version})
                log.error(f"Deployment failed: {e}")
                raise

            self._state.set_status(target, SlotStatus.STANDBY)
            self._state.set_version(target, version)
            self._emit("deployed", f"Deployed {version} to {target.value}", {"slot": target.value, "version": version})
            log.info("Deployment to standby slot succeeded")
            return self._state.copy()

    async def switch_environments(self) -> BlueGreenState:
        """Move all traffic from the active slot to the standby slot.

        Fails immediately if another switch is running.

        Returns:
            State snapshot after the switch

        Raises:
            SwitchInProgressError: If a switch is already running
            UnhealthyTargetError: If the standby slot fails its final health check
            RollbackFailedError: If restoring the original slot also fails
        """
        self._require_enabled()
        # Check and set with no await in between
        if self._state.switch_in_progress:
            raise SwitchInProgressError()
        self._state.switch_in_progress = True

        try:
            async with self._lock:
                current = self._state.active_environment
                target = current.other
                log = self.log.bind(source=current.value, target=target.value)
                log.info("Switching environments")

                try:
                    result = await self.health_check(target)
                    if not result.healthy:
                        raise UnhealthyTargetError(
                            f"Cannot switch to unhealthy environment {target.value}: {result.error}",
                            slot=target.value,
                            result=result,
                        )

                    await self._call(
                        self._router.switch_traffic(current, target),
                        self.config.operation_timeout,
                        f"Traffic switch to {target.value}",
                    )

                except Exception as e:
                    log.error(f"Switch failed: {e}")
                    self._state.set_status(target, SlotStatus.FAILED)
                    self._emit("switch_failed", f"Switch to {target.value} failed: {e}", {"from": current.value, "to": target.value})

                    if self.config.rollback_on_failure:
                        await self._restore(failed=target, restored=current)
                    raise

                self._state.active_environment = target
                self._state.set_status(target, SlotStatus.ACTIVE)
                self._state.set_status(current, SlotStatus.STANDBY)
                self._state.last_switch = utcnow()
                self._emit("switched", f"Traffic now routing to {target.value}", {"from": current.value, "to": target.value})
                log.info("Switch complete")

                await self._start_monitoring(target)
                return self._state.copy()

        finally:
            self._state.switch_in_progress = False

    async def rollback(self) -> BlueGreenState:
        """Move traffic back to the slot that is not currently active.

        The previously active slot is marked failed.

        Raises:
            RollbackFailedError: If the rollback target is unhealthy
        """
        self._require_enabled()
        async with self._lock:
            await self._rollback_locked()
            return self._state.copy()

    async def deploy_and_switch(self, version: str) -> bool:
        """Deploy to standby and, with ``auto_switch``, promote after ``switch_delay``.

        Returns:
            True if traffic was switched to the new version
        """
        await self.deploy_to_standby(version)

        if not self.config.auto_switch:
            self.log.info("Auto-switch disabled, leaving new version on standby", version=version)
            return False

        if self.config.switch_delay:
            self.log.info(f"Switching in {format_duration(self.config.switch_delay * 60)}", version=version)
            await asyncio.sleep(self.config.switch_delay * 60)

        await self.switch_environments()
        return True

    async def _rollback_locked(self) -> None:
        current = self._state.active_environment
        target = current.other
        self.log.warning("Rolling back", source=current.value, target=target.value)
        await self._restore(failed=current, restored=target)

    async def _restore(self, failed: Slot, restored: Slot) -> None:
        """Point traffic at ``restored`` and mark ``failed`` as failed."""
        result = await self.health_check(restored)
        if not result.healthy:
            error = self._fatal(
                f"Cannot rollback to unhealthy environment {restored.value}: {result.error}",
                restored,
            )
            await self._stop_monitoring()
            raise error

        try:
            await self._call(
                self._router.switch_traffic(failed, restored),
                self.config.operation_timeout,
                f"Traffic switch to {restored.value}",
            )
        except Exception as e:
            error = self._fatal(
                f"Traffic switch to {restored.value} failed during rollback: {e}",
                restored,
            )
            await self._stop_monitoring()
            raise error from e

        self._state.active_environment = restored
        self._state.set_status(restored, SlotStatus.ACTIVE)
        self._state.set_status(failed, SlotStatus.FAILED)
        self._state.last_switch = utcnow()
        self.fatal_error = None
        self._emit("rolled_back", f"Traffic restored to {restored.value}", {"from": failed.value, "to": restored.value})
        self.log.info("Rollback complete", slot=restored.value)

        await self._start_monitoring(restored)

    def _fatal(self, message: str, slot: Slot) -> RollbackFailedError:
        error = RollbackFailedError(message, slot=slot.value)
        self.fatal_error = error
        self._emit("rollback_failed", error.message, {"slot": error.slot})
        self.log.critical(f"Rollback failed, operator intervention required: {error.message}")
        return error

    async def _warmup(self, slot: Slot) -> None:
        if self.config.warmup_time:
            self.log.info(f"Warming up {slot.value} ({format_duration(self.config.warmup_time)})")
            await asyncio.sleep(self.config.warmup_time)

    async def _start_monitoring(self, slot: Slot) -> None:
        await self._stop_monitoring()
        if self._closed:
            return
        self.monitored_slot = slot
        self._monitor = PeriodicTask(
            f"blue-green-monitor-{slot.value}",
            self.config.health_check_interval,
            lambda: self._monitor_tick(slot),
            tick_timeout=self.config.health_check_timeout + MONITOR_TICK_MARGIN,
        )
        self._monitor.start()

    async def _stop_monitoring(self) -> None:
        if self._monitor is not None:
            await self._monitor.stop()
        self._monitor = None
        self.monitored_slot = None

    async def stop_health_monitoring(self) -> None:
        """Stop continuous monitoring of the active slot."""
        await self._stop_monitoring()

    async def _monitor_tick(self, slot: Slot) -> None:
        result = await self.health_check(slot)
        if result.healthy:
            self.log.debug("Health check passed", slot=slot.value)
            return

        self.log.warning(f"Health check failed: {result.error}", slot=slot.value)
        self._emit("health_check_failed", f"Health check failed for {slot.value}: {result.error}", {"slot": slot.value})

        if self.config.rollback_on_failure:
            self._mailbox.post(HealthCheckFailed(slot=slot, error=result.error))

    async def _handle_message(self, message: Any) -> None:
        if not isinstance(message, HealthCheckFailed):
            self.log.warning(f"Ignoring unknown message {type(message).__name__}")
            return

        async with self._lock:
            if self._closed:
                return
            if message.slot is not self._state.active_environment:
                self.log.debug("Ignoring stale health failure", slot=message.slot.value)
                return
            if self._state.status_of(message.slot) is not SlotStatus.ACTIVE:
                return
            self.log.error("Active slot unhealthy, initiating rollback", slot=message.slot.value)
            await self._rollback_locked()

    async def _stop_loops(self) -> None:
        await self._stop_monitoring()

    async def close(self) -> None:
        await super().close()
        if self._owns_probe:
            await self._probe.aclose()
