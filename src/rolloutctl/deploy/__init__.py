"""Blue-green and canary deployment controllers."""

from rolloutctl.deploy.blue_green import BlueGreenController
from rolloutctl.deploy.canary import CanaryController
from rolloutctl.deploy.capabilities import (
    Deployer,
    DryRunDeployer,
    DryRunTrafficRouter,
    MetricsSource,
    TrafficRouter,
)
from rolloutctl.deploy.health import HealthProbe, HealthResult
from rolloutctl.deploy.metrics import HttpMetricsSource
from rolloutctl.deploy.models import (
    BlueGreenState,
    CanaryMetrics,
    CanaryState,
    CanaryStatus,
    DeploymentEvent,
    Slot,
    SlotStatus,
    TrafficSplitRule,
)
from rolloutctl.deploy.state import StateStore

__all__ = [
    "BlueGreenController",
    "BlueGreenState",
    "CanaryController",
    "CanaryMetrics",
    "CanaryState",
    "CanaryStatus",
    "Deployer",
    "DeploymentEvent",
    "DryRunDeployer",
    "DryRunTrafficRouter",
    "HealthProbe",
    "HealthResult",
    "HttpMetricsSource",
    "MetricsSource",
    "Slot",
    "SlotStatus",
    "StateStore",
    "TrafficRouter",
    "TrafficSplitRule",
]
