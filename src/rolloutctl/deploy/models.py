"""Deployment data models."""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: str | None) -> datetime | None:
    if value:
        return datetime.fromisoformat(value)
    return None


def _format_time(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Slot(str, Enum):
    """Blue/green deployment slots."""

    BLUE = "blue"
    GREEN = "green"

    @property
    def other(self) -> "Slot":
        return Slot.GREEN if self is Slot.BLUE else Slot.BLUE


class SlotStatus(str, Enum):
    """Status of a single blue/green slot."""

    ACTIVE = "active"
    STANDBY = "standby"
    DEPLOYING = "deploying"
    FAILED = "failed"


class CanaryStatus(str, Enum):
    """Canary rollout status."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_live(self) -> bool:
        """Whether the canary is still receiving a partial split."""
        return self in (CanaryStatus.RUNNING, CanaryStatus.PAUSED)


@dataclass
class BlueGreenState:
    """Blue/green controller state.

    Exactly one slot is ACTIVE whenever no switch is in flight.
    ``switch_in_progress`` guards switches; it is not a slot status.
    """

    active_environment: Slot = Slot.BLUE
    blue_version: str = ""
    green_version: str = ""
    blue_status: SlotStatus = SlotStatus.ACTIVE
    green_status: SlotStatus = SlotStatus.STANDBY
    last_switch: datetime | None = None
    switch_in_progress: bool = False

    @property
    def standby_environment(self) -> Slot:
        return self.active_environment.other

    def status_of(self, slot: Slot) -> SlotStatus:
        return self.blue_status if slot is Slot.BLUE else self.green_status

    def version_of(self, slot: Slot) -> str:
        return self.blue_version if slot is Slot.BLUE else self.green_version

    def set_status(self, slot: Slot, status: SlotStatus) -> None:
        if slot is Slot.BLUE:
            self.blue_status = status
        else:
            self.green_status = status

    def set_version(self, slot: Slot, version: str) -> None:
        if slot is Slot.BLUE:
            self.blue_version = version
        else:
            self.green_version = version

    def copy(self) -> "BlueGreenState":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "activeEnvironment": self.active_environment.value,
            "blueVersion": self.blue_version,
            "greenVersion": self.green_version,
            "blueStatus": self.blue_status.value,
            "greenStatus": self.green_status.value,
            "lastSwitch": _format_time(self.last_switch),
            "switchInProgress": self.switch_in_progress,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlueGreenState":
        """Create from dictionary."""
        return cls(
            active_environment=Slot(data.get("activeEnvironment", "blue")),
            blue_version=data.get("blueVersion", ""),
            green_version=data.get("greenVersion", ""),
            blue_status=SlotStatus(data.get("blueStatus", "active")),
            green_status=SlotStatus(data.get("greenStatus", "standby")),
            last_switch=_parse_time(data.get("lastSwitch")),
            switch_in_progress=data.get("switchInProgress", False),
        )


# Wire name -> attribute name
METRIC_FIELDS = {
    "totalRequests": "total_requests",
    "canaryRequests": "canary_requests",
    "baselineRequests": "baseline_requests",
    "errorRate": "error_rate",
    "canaryErrorRate": "canary_error_rate",
    "baselineErrorRate": "baseline_error_rate",
    "averageResponseTime": "average_response_time",
    "canaryResponseTime": "canary_response_time",
    "baselineResponseTime": "baseline_response_time",
}

COUNTER_FIELDS = {"total_requests", "canary_requests", "baseline_requests"}


@dataclass
class CanaryMetrics:
    """Request counters, error rates (percent) and response times (ms)."""

    total_requests: int = 0
    canary_requests: int = 0
    baseline_requests: int = 0
    error_rate: float = 0.0
    canary_error_rate: float = 0.0
    baseline_error_rate: float = 0.0
    average_response_time: float = 0.0
    canary_response_time: float = 0.0
    baseline_response_time: float = 0.0

    def merge(self, data: dict[str, Any]) -> "CanaryMetrics":
        """Return a copy updated with the numeric fields present in ``data``.

        Absent or non-numeric fields keep their previous values.
        """
        merged = copy.copy(self)
        for wire_name, attr in METRIC_FIELDS.items():
            value = data.get(wire_name)
            # bool is an int subclass but never a metric
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if attr in COUNTER_FIELDS:
                value = max(0, int(value))
            else:
                value = float(value)
            setattr(merged, attr, value)
        return merged

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {wire: getattr(self, attr) for wire, attr in METRIC_FIELDS.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CanaryMetrics":
        """Create from dictionary."""
        return cls().merge(data)


@dataclass
class CanaryState:
    """Canary controller state."""

    enabled: bool = False
    version: str = ""
    baseline_version: str = ""
    traffic_percentage: int = 0
    start_time: datetime | None = None
    last_increment_time: datetime | None = None
    status: CanaryStatus = CanaryStatus.IDLE
    metrics: CanaryMetrics = field(default_factory=CanaryMetrics)

    def copy(self) -> "CanaryState":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "enabled": self.enabled,
            "version": self.version,
            "baselineVersion": self.baseline_version,
            "trafficPercentage": self.traffic_percentage,
            "startTime": _format_time(self.start_time),
            "lastIncrementTime": _format_time(self.last_increment_time),
            "status": self.status.value,
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CanaryState":
        """Create from dictionary."""
        return cls(
            enabled=data.get("enabled", False),
            version=data.get("version", ""),
            baseline_version=data.get("baselineVersion", ""),
            traffic_percentage=data.get("trafficPercentage", 0),
            start_time=_parse_time(data.get("startTime")),
            last_increment_time=_parse_time(data.get("lastIncrementTime")),
            status=CanaryStatus(data.get("status", "idle")),
            metrics=CanaryMetrics.from_dict(data.get("metrics", {})),
        )


@dataclass(frozen=True)
class TrafficSplitRule:
    """Weighted routing rule for one version."""

    version: str
    percentage: int

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "percentage": self.percentage}


def canary_split(version: str, baseline: str, percentage: int) -> list[TrafficSplitRule]:
    """Build the two-rule split sending ``percentage`` to the canary."""
    return [
        TrafficSplitRule(version=version, percentage=percentage),
        TrafficSplitRule(version=baseline, percentage=100 - percentage),
    ]


@dataclass
class DeploymentEvent:
    """Deployment event for audit trail."""

    timestamp: datetime
    event_type: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "message": self.message,
            "details": self.details,
        }


# Controller mailbox messages


@dataclass(frozen=True)
class HealthCheckFailed:
    """Monitoring saw a failed probe on an active slot."""

    slot: Slot
    error: str | None = None


@dataclass(frozen=True)
class MetricThresholdBreached:
    """Collected canary metrics crossed a rollback threshold."""

    version: str
    metrics: CanaryMetrics
