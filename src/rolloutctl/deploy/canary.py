"""Canary deployment controller with metrics-driven traffic ramping."""

from typing import Any

from rolloutctl.config import CanaryConfig, EnvironmentConfig
from rolloutctl.core.exceptions import PreconditionError, ValidationError
from rolloutctl.deploy.base import DeploymentController, EventListener
from rolloutctl.deploy.capabilities import MetricsSource, TrafficRouter
from rolloutctl.deploy.metrics import HttpMetricsSource
from rolloutctl.deploy.models import (
    CanaryMetrics,
    CanaryState,
    CanaryStatus,
    MetricThresholdBreached,
    canary_split,
    utcnow,
)
from rolloutctl.deploy.scheduler import PeriodicTask

METRICS_INTERVAL = 30  # seconds
RESPONSE_TIME_RATIO_LIMIT = 1.5


class CanaryController(DeploymentController):
    """Ramps traffic from a baseline version to a canary version.

    Two loops run while a canary is live: metrics polling (every
    ``metrics_interval`` seconds) and auto-increment (every
    ``increment_interval`` minutes). Pausing stops only the increment loop;
    metrics polling and metric-triggered rollback keep running while paused.
    """

    controller_name = "canary"

    def __init__(
        self,
        config: CanaryConfig,
        environment: EnvironmentConfig,
        router: TrafficRouter,
        metrics_source: MetricsSource | None = None,
        listener: EventListener | None = None,
        metrics_interval: float = METRICS_INTERVAL,
        initial_state: CanaryState | None = None,
    ):
        super().__init__(environment.name, listener)
        self.config = config
        self.environment = environment
        self._router = router
        self._metrics_source = metrics_source or HttpMetricsSource(timeout=config.operation_timeout)
        self._owns_metrics_source = metrics_source is None
        self.metrics_interval = metrics_interval
        self._state = initial_state.copy() if initial_state else CanaryState()
        self._metrics_task: PeriodicTask | None = None
        self._increment_task: PeriodicTask | None = None

    def is_enabled(self) -> bool:
        return self.config.enabled

    def get_state(self) -> CanaryState:
        """Return a snapshot of the current state."""
        return self._state.copy()

    @property
    def metrics_polling(self) -> bool:
        return self._metrics_task is not None and self._metrics_task.running

    @property
    def auto_incrementing(self) -> bool:
        return self._increment_task is not None and self._increment_task.running

    async def start_canary(self, version: str, baseline_version: str) -> CanaryState:
        """Start routing ``initial_traffic_percentage`` of traffic to ``version``.

        Raises:
            PreconditionError: If a canary is already running or paused
        """
        self._require_enabled()
        if not version or not baseline_version:
            raise ValidationError("Canary and baseline versions must not be empty")

        async with self._lock:
            if self._state.status.is_live:
                raise PreconditionError(
                    "Canary deployment already in progress",
                    details={"version": self._state.version, "status": self._state.status.value},
                )

            percentage = self.config.initial_traffic_percentage
            log = self.log.bind(version=version, baseline=baseline_version)
            log.info("Starting canary deployment")

            now = utcnow()
            self._state = CanaryState(
                enabled=True,
                version=version,
                baseline_version=baseline_version,
                traffic_percentage=percentage,
                start_time=now,
                last_increment_time=now,
                status=CanaryStatus.RUNNING,
                metrics=CanaryMetrics(),
            )

            try:
                await self._apply_split(percentage)
            except Exception as e:
                log.error(f"Failed to start canary deployment: {e}")
                self._state.status = CanaryStatus.IDLE
                self._emit("start_failed", f"Failed to start canary {version}: {e}", {"version": version})
                raise

            self._start_metrics_collection()
            self._start_auto_increment()
            self._emit(
                "started",
                f"Canary {version} started with {percentage}% traffic",
                {"version": version, "baseline": baseline_version, "percentage": percentage},
            )
            log.info(f"Started with {percentage}% traffic")
            return self._state.copy()

    async def pause_canary(self) -> CanaryState:
        """Stop ramping. Metrics polling continues."""
        self._require_open()
        async with self._lock:
            if self._state.status is not CanaryStatus.RUNNING:
                raise PreconditionError("No canary deployment in progress")

            self._state.status = CanaryStatus.PAUSED
            await self._stop_auto_increment()
            self._emit("paused", f"Canary {self._state.version} paused at {self._state.traffic_percentage}%")
            self.log.info("Canary paused", percentage=self._state.traffic_percentage)
            return self._state.copy()

    async def resume_canary(self) -> CanaryState:
        """Resume ramping a paused canary."""
        self._require_open()
        async with self._lock:
            if self._state.status is not CanaryStatus.PAUSED:
                raise PreconditionError("Canary deployment is not paused")

            self._state.status = CanaryStatus.RUNNING
            self._start_auto_increment()
            self._emit("resumed", f"Canary {self._state.version} resumed at {self._state.traffic_percentage}%")
            self.log.info("Canary resumed", percentage=self._state.traffic_percentage)
            return self._state.copy()

    async def adjust_traffic(self, percentage: int) -> CanaryState:
        """Set the canary's share of traffic.

        Raises:
            ValidationError: If ``percentage`` is outside 0..100
            PreconditionError: If no canary is running or paused
        """
        self._require_open()
        async with self._lock:
            await self._adjust_locked(percentage)
            return self._state.copy()

    async def complete_canary(self) -> CanaryState:
        """Route all traffic to the canary and stop both loops."""
        self._require_open()
        async with self._lock:
            await self._complete_locked()
            return self._state.copy()

    async def rollback_canary(self) -> CanaryState:
        """Route all traffic back to the baseline and stop both loops."""
        self._require_open()
        async with self._lock:
            await self._rollback_locked()
            return self._state.copy()

    async def auto_increment(self) -> None:
        """Advance the split by ``increment_percentage``, completing at 100."""
        async with self._lock:
            if self._state.status is not CanaryStatus.RUNNING:
                return

            new_percentage = min(
                100,
                self._state.traffic_percentage + self.config.increment_percentage,
            )

            if new_percentage == 100:
                await self._complete_locked()
            else:
                await self._adjust_locked(new_percentage)
                self.log.info(f"Auto-incremented traffic to {new_percentage}%")

    async def collect_metrics(self) -> None:
        """Fetch metrics for the canary and trigger rollback on a breach.

        Transport errors are logged and leave the current metrics unchanged.
        """
        if not self.config.metrics_endpoint:
            return
        if not self._state.status.is_live:
            return

        version = self._state.version
        try:
            data = await self._call(
                self._metrics_source.fetch(
                    self.environment.get_url(),
                    self.config.metrics_endpoint,
                    version,
                ),
                self.config.operation_timeout,
                "Metrics fetch",
            )
        except Exception as e:
            self.log.warning(f"Failed to collect metrics: {e}", version=version)
            return

        # The canary may have been replaced or finished while fetching
        if self._state.version != version or not self._state.status.is_live:
            return

        self._state.metrics = self._state.metrics.merge(data)

        if self.should_rollback():
            self.log.error("Canary metrics breached rollback threshold", version=version)
            self._emit(
                "threshold_breached",
                f"Canary {version} breached rollback thresholds",
                {"metrics": self._state.metrics.to_dict()},
            )
            if self.config.auto_rollback:
                self._mailbox.post(MetricThresholdBreached(version=version, metrics=self._state.metrics))

    def should_rollback(self, metrics: CanaryMetrics | None = None) -> bool:
        """Check the rollback conditions against ``metrics`` (default: current)."""
        m = metrics or self._state.metrics
        max_error_rate = self.config.max_error_rate

        if m.canary_error_rate > max_error_rate:
            return True

        if m.canary_error_rate - m.baseline_error_rate > max_error_rate / 2:
            return True

        # A zero baseline means no latency sample yet. It is never a breach,
        # otherwise any canary latency reported before a baseline one would
        # roll back.
        if m.baseline_response_time > 0:
            if m.canary_response_time / m.baseline_response_time > RESPONSE_TIME_RATIO_LIMIT:
                return True

        return False

    async def _adjust_locked(self, percentage: int) -> None:
        if not self._state.status.is_live:
            raise PreconditionError("No active canary deployment")

        if isinstance(percentage, bool) or not isinstance(percentage, int):
            raise ValidationError(f"Traffic percentage must be an integer, got {percentage!r}")
        if percentage < 0 or percentage > 100:
            raise ValidationError("Traffic percentage must be between 0 and 100")

        self.log.info(f"Adjusting traffic to {percentage}%")
        await self._apply_split(percentage)

        previous = self._state.traffic_percentage
        self._state.traffic_percentage = percentage
        self._state.last_increment_time = utcnow()
        self._emit(
            "traffic_adjusted",
            f"Canary traffic {previous}% -> {percentage}%",
            {"from": previous, "to": percentage},
        )

    async def _complete_locked(self) -> None:
        if not self._state.status.is_live:
            raise PreconditionError("No canary deployment to complete")

        self.log.info("Completing canary deployment", version=self._state.version)
        await self._apply_split(100)

        self._state.traffic_percentage = 100
        self._state.last_increment_time = utcnow()
        self._state.status = CanaryStatus.COMPLETED
        await self._stop_loops()

        self._emit("completed", f"Canary {self._state.version} promoted to 100%")
        self.log.info("Successfully promoted canary", version=self._state.version)

    async def _rollback_locked(self) -> None:
        if not self._state.status.is_live:
            raise PreconditionError("No canary deployment to rollback")

        self.log.warning("Rolling back canary deployment", version=self._state.version)
        await self._apply_split(0)

        self._state.traffic_percentage = 0
        self._state.status = CanaryStatus.ROLLED_BACK
        await self._stop_loops()

        self._emit(
            "rolled_back",
            f"Canary {self._state.version} rolled back to {self._state.baseline_version}",
        )
        self.log.info("Rolled back to baseline", baseline=self._state.baseline_version)

    async def _apply_split(self, percentage: int) -> None:
        rules = canary_split(self._state.version, self._state.baseline_version, percentage)
        await self._call(
            self._router.apply_traffic_split(rules),
            self.config.operation_timeout,
            "Traffic split",
        )

    async def _handle_message(self, message: Any) -> None:
        if not isinstance(message, MetricThresholdBreached):
            self.log.warning(f"Ignoring unknown message {type(message).__name__}")
            return

        async with self._lock:
            if self._closed:
                return
            if message.version != self._state.version or not self._state.status.is_live:
                self.log.debug("Ignoring stale threshold breach", version=message.version)
                return
            self.log.error("Error rate exceeded, initiating rollback", version=message.version)
            await self._rollback_locked()

    def _start_metrics_collection(self) -> None:
        if self._closed:
            return
        if self._metrics_task is None:
            self._metrics_task = PeriodicTask(
                "canary-metrics",
                self.metrics_interval,
                self.collect_metrics,
            )
        self._metrics_task.start()

    def _start_auto_increment(self) -> None:
        if self._closed:
            return
        if self._increment_task is None:
            self._increment_task = PeriodicTask(
                "canary-increment",
                self.config.increment_interval * 60,
                self.auto_increment,
            )
        self._increment_task.start()

    async def _stop_auto_increment(self) -> None:
        if self._increment_task is not None:
            await self._increment_task.stop()

    async def _stop_loops(self) -> None:
        if self._metrics_task is not None:
            await self._metrics_task.stop()
        await self._stop_auto_increment()

    async def close(self) -> None:
        await super().close()
        if self._owns_metrics_source:
            await self._metrics_source.aclose()
