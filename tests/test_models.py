"""Tests for deployment models, traffic splits and state persistence."""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from rolloutctl.core.exceptions import DeploymentError, ValidationError
from rolloutctl.deploy.capabilities import DryRunTrafficRouter, validate_split
from rolloutctl.deploy.models import (
    BlueGreenState,
    CanaryMetrics,
    CanaryState,
    CanaryStatus,
    Slot,
    SlotStatus,
    TrafficSplitRule,
    canary_split,
)
from rolloutctl.deploy.state import StateStore


class TestSlot:
    """Tests for Slot."""

    def test_other(self):
        assert Slot.BLUE.other is Slot.GREEN
        assert Slot.GREEN.other is Slot.BLUE


class TestBlueGreenState:
    """Tests for BlueGreenState."""

    def test_initial_state(self):
        state = BlueGreenState()
        assert state.active_environment is Slot.BLUE
        assert state.blue_status is SlotStatus.ACTIVE
        assert state.green_status is SlotStatus.STANDBY
        assert state.standby_environment is Slot.GREEN
        assert state.blue_version == ""
        assert state.last_switch is None

    def test_slot_accessors(self):
        state = BlueGreenState()
        state.set_status(Slot.GREEN, SlotStatus.DEPLOYING)
        state.set_version(Slot.GREEN, "v2")

        assert state.status_of(Slot.GREEN) is SlotStatus.DEPLOYING
        assert state.version_of(Slot.GREEN) == "v2"
        assert state.version_of(Slot.BLUE) == ""

    def test_wire_format(self):
        switched = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        state = BlueGreenState(
            active_environment=Slot.GREEN,
            blue_version="v1",
            green_version="v2",
            blue_status=SlotStatus.STANDBY,
            green_status=SlotStatus.ACTIVE,
            last_switch=switched,
        )

        data = state.to_dict()

        assert data == {
            "activeEnvironment": "green",
            "blueVersion": "v1",
            "greenVersion": "v2",
            "blueStatus": "standby",
            "greenStatus": "active",
            "lastSwitch": "2024-05-01T12:30:00+00:00",
            "switchInProgress": False,
        }
        assert BlueGreenState.from_dict(json.loads(json.dumps(data))) == state

    def test_from_empty_dict(self):
        assert BlueGreenState.from_dict({}) == BlueGreenState()


class TestCanaryMetrics:
    """Tests for CanaryMetrics."""

    def test_merge_updates_present_fields_only(self):
        metrics = CanaryMetrics(canary_error_rate=2.0, baseline_error_rate=1.0)

        merged = metrics.merge({"canaryErrorRate": 3, "totalRequests": 50})

        assert merged.canary_error_rate == 3.0
        assert merged.baseline_error_rate == 1.0
        assert merged.total_requests == 50
        # Original untouched
        assert metrics.canary_error_rate == 2.0

    def test_merge_ignores_non_numeric(self):
        metrics = CanaryMetrics(canary_response_time=120.0)

        merged = metrics.merge(
            {"canaryResponseTime": "slow", "errorRate": None, "canaryRequests": True, "other": 5}
        )

        assert merged == metrics

    def test_merge_clamps_counters(self):
        merged = CanaryMetrics().merge({"totalRequests": -5, "canaryRequests": 12.7})

        assert merged.total_requests == 0
        assert merged.canary_requests == 12
        assert isinstance(merged.canary_requests, int)

    def test_to_dict_uses_wire_names(self):
        data = CanaryMetrics(canary_error_rate=1.5).to_dict()
        assert data["canaryErrorRate"] == 1.5
        assert data["totalRequests"] == 0
        assert len(data) == 9


class TestCanaryState:
    """Tests for CanaryState."""

    def test_live_statuses(self):
        assert CanaryStatus.RUNNING.is_live
        assert CanaryStatus.PAUSED.is_live
        assert not CanaryStatus.IDLE.is_live
        assert not CanaryStatus.COMPLETED.is_live
        assert not CanaryStatus.ROLLED_BACK.is_live

    def test_wire_format(self):
        started = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        state = CanaryState(
            enabled=True,
            version="v2",
            baseline_version="v1",
            traffic_percentage=30,
            start_time=started,
            last_increment_time=started,
            status=CanaryStatus.PAUSED,
            metrics=CanaryMetrics(canary_error_rate=0.4),
        )

        data = state.to_dict()

        assert data["baselineVersion"] == "v1"
        assert data["trafficPercentage"] == 30
        assert data["status"] == "paused"
        assert data["metrics"]["canaryErrorRate"] == 0.4
        assert CanaryState.from_dict(json.loads(json.dumps(data))) == state


class TestTrafficSplit:
    """Tests for traffic split rules."""

    def test_canary_split(self):
        rules = canary_split("v2", "v1", 30)
        assert rules == [
            TrafficSplitRule(version="v2", percentage=30),
            TrafficSplitRule(version="v1", percentage=70),
        ]
        validate_split(rules)

    @pytest.mark.parametrize(
        "rules",
        [
            [],
            [TrafficSplitRule("v2", 30), TrafficSplitRule("v1", 60)],
            [TrafficSplitRule("v2", 120), TrafficSplitRule("v1", -20)],
        ],
    )
    def test_invalid_splits(self, rules):
        with pytest.raises(ValidationError):
            validate_split(rules)

    def test_dry_run_router_validates(self):
        router = DryRunTrafficRouter()
        with pytest.raises(ValidationError):
            asyncio.run(router.apply_traffic_split([TrafficSplitRule("v2", 50)]))
        assert router.splits == []


class TestStateStore:
    """Tests for StateStore."""

    def test_save_and_load(self, tmp_path: Path):
        store = StateStore(tmp_path / "state")
        state = BlueGreenState(active_environment=Slot.GREEN, green_version="v2")

        store.save("production", "blue-green", state.to_dict())

        assert (tmp_path / "state" / "production-blue-green.json").exists()
        loaded = store.load("production", "blue-green")
        assert BlueGreenState.from_dict(loaded) == state

    def test_load_missing(self, tmp_path: Path):
        store = StateStore(tmp_path)
        assert store.load("production", "canary") is None

    def test_load_corrupt(self, tmp_path: Path):
        store = StateStore(tmp_path)
        (tmp_path / "production-canary.json").write_text("{not json")

        with pytest.raises(DeploymentError):
            store.load("production", "canary")

    def test_load_non_object(self, tmp_path: Path):
        store = StateStore(tmp_path)
        (tmp_path / "production-canary.json").write_text("[1, 2]")

        with pytest.raises(DeploymentError):
            store.load("production", "canary")

    def test_delete(self, tmp_path: Path):
        store = StateStore(tmp_path)
        store.save("staging", "canary", CanaryState().to_dict())

        assert store.delete("staging", "canary") is True
        assert store.delete("staging", "canary") is False
        assert store.load("staging", "canary") is None
