"""Capabilities the controllers drive but do not implement.

Concrete deployers, routers and metrics backends are supplied by the
caller. The dry-run implementations only log what would happen.
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence

from rolloutctl.core.exceptions import ValidationError
from rolloutctl.core.logging import get_logger
from rolloutctl.deploy.models import Slot, TrafficSplitRule

logger = get_logger(__name__)


def validate_split(rules: Sequence[TrafficSplitRule]) -> None:
    """Reject splits that do not add up to 100 percent."""
    if not rules:
        raise ValidationError("Traffic split needs at least one rule")

    for rule in rules:
        if not 0 <= rule.percentage <= 100:
            raise ValidationError(
                f"Traffic percentage must be between 0 and 100, got {rule.percentage}",
                details={"version": rule.version},
            )

    total = sum(rule.percentage for rule in rules)
    if total != 100:
        raise ValidationError(
            f"Traffic split must sum to 100, got {total}",
            details={"rules": [r.to_dict() for r in rules]},
        )


class Deployer(ABC):
    """Deploys an artifact version to a blue/green slot."""

    @abstractmethod
    async def deploy(self, slot: Slot, version: str) -> None:
        """Deploy ``version`` to ``slot``."""
        pass


class TrafficRouter(ABC):
    """Moves live traffic between slots and versions."""

    @abstractmethod
    async def switch_traffic(self, from_slot: Slot, to_slot: Slot) -> None:
        """Repoint 100% of live traffic from one slot to the other."""
        pass

    @abstractmethod
    async def apply_traffic_split(self, rules: Sequence[TrafficSplitRule]) -> None:
        """Apply a weighted multi-version split summing to 100."""
        pass


class MetricsSource(ABC):
    """Fetches request/error counters for a version."""

    @abstractmethod
    async def fetch(self, url: str, path: str, version_tag: str) -> dict[str, Any]:
        """Return any subset of the canary metric fields for ``version_tag``."""
        pass


class DryRunDeployer(Deployer):
    """Deployer that only logs."""

    def __init__(self):
        self.deployments: list[tuple[Slot, str]] = []

    async def deploy(self, slot: Slot, version: str) -> None:
        logger.info(f"[dry-run] Would deploy {version} to {slot.value}")
        self.deployments.append((slot, version))


class DryRunTrafficRouter(TrafficRouter):
    """Router that validates and logs requests without moving traffic."""

    def __init__(self):
        self.switches: list[tuple[Slot, Slot]] = []
        self.splits: list[list[TrafficSplitRule]] = []

    async def switch_traffic(self, from_slot: Slot, to_slot: Slot) -> None:
        logger.info(f"[dry-run] Would switch traffic from {from_slot.value} to {to_slot.value}")
        self.switches.append((from_slot, to_slot))

    async def apply_traffic_split(self, rules: Sequence[TrafficSplitRule]) -> None:
        validate_split(rules)
        summary = ", ".join(f"{r.version}={r.percentage}%" for r in rules)
        logger.info(f"[dry-run] Would apply traffic split: {summary}")
        self.splits.append(list(rules))
