"""Tests for CLI commands.

Commands run through ``CliRunner`` against the dry-run deployer and
router, with health probes served by ``FakeTargets``.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from conftest import FakeTargets
from rolloutctl.cli import cli


def state_file(controller: str, environment: str = "staging") -> Path:
    return Path(os.environ["ROLLOUTCTL_STATE_DIR"]) / f"{environment}-{controller}.json"


def read_state(controller: str, environment: str = "staging") -> dict:
    return json.loads(state_file(controller, environment).read_text())


@pytest.fixture
def invoke(cli_runner: CliRunner, temp_config_file: str):
    """Invoke the CLI with the temporary config and colour disabled."""

    def _invoke(*args: str):
        return cli_runner.invoke(cli, ["-c", temp_config_file, "--no-color", *args])

    return _invoke


@pytest.fixture
def patched_probes(targets: FakeTargets):
    """Route every HealthProbe the controllers create through ``targets``."""
    with patch("rolloutctl.deploy.blue_green.HealthProbe", side_effect=targets.probe):
        yield targets


class TestCLIEntryPoint:
    """Tests for main CLI entry point, flags, and options."""

    def test_help(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "rolloutctl" in result.output
        assert "bluegreen" in result.output
        assert "canary" in result.output
        assert "health" in result.output

    def test_version(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "rolloutctl version" in result.output

    def test_invalid_output_format(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["-o", "xml", "config"])
        assert result.exit_code == 2
        assert "xml" in result.output

    def test_unknown_environment(self, invoke):
        result = invoke("-e", "nowhere", "config")
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_config_command(self, invoke):
        result = invoke("config")
        assert result.exit_code == 0
        assert '"project": "board"' in result.output
        assert '"url": "https://staging.board.test"' in result.output
        assert '"initial_traffic_percentage": 5' in result.output

    def test_environment_from_envvar(self, cli_runner: CliRunner, temp_config_file: str):
        result = cli_runner.invoke(
            cli,
            ["-c", temp_config_file, "--no-color", "config"],
            env={"ROLLOUTCTL_ENVIRONMENT": "staging"},
        )
        assert result.exit_code == 0
        assert '"name": "staging"' in result.output

    @pytest.mark.parametrize("group", ["bluegreen", "canary", "health"])
    def test_group_help(self, cli_runner: CliRunner, group: str):
        result = cli_runner.invoke(cli, [group, "--help"])
        assert result.exit_code == 0
        assert "Examples" in result.output


class TestBlueGreenCommands:
    """Tests for the bluegreen command group."""

    def test_deploy(self, invoke, patched_probes: FakeTargets):
        result = invoke("bluegreen", "deploy", "v2")

        assert result.exit_code == 0, result.output
        assert "Deployed v2 to green" in result.output
        state = read_state("blue-green")
        assert state["greenVersion"] == "v2"
        assert state["greenStatus"] == "standby"
        assert state["activeEnvironment"] == "blue"
        hosts = {r.url.host for r in patched_probes.requests}
        assert hosts == {"green-staging.board.test"}

    def test_deploy_and_switch(self, invoke, patched_probes: FakeTargets):
        result = invoke("bluegreen", "deploy", "v2", "--switch")

        assert result.exit_code == 0, result.output
        assert "switched traffic to green" in result.output
        state = read_state("blue-green")
        assert state["activeEnvironment"] == "green"
        assert state["greenStatus"] == "active"
        assert state["lastSwitch"] is not None

    def test_switch_then_rollback(self, invoke, patched_probes: FakeTargets):
        assert invoke("bluegreen", "deploy", "v2").exit_code == 0

        result = invoke("bluegreen", "switch")
        assert result.exit_code == 0, result.output
        assert "Traffic now routing to green" in result.output

        result = invoke("bluegreen", "rollback")
        assert result.exit_code == 0, result.output
        assert "Rolled back to blue" in result.output
        assert read_state("blue-green")["activeEnvironment"] == "blue"

    def test_unhealthy_deploy_aborts_and_saves_failure(self, invoke, patched_probes: FakeTargets):
        patched_probes.status["green-staging.board.test"] = 503

        result = invoke("bluegreen", "deploy", "v2")

        assert result.exit_code == 1
        state = read_state("blue-green")
        assert state["greenStatus"] == "failed"
        assert state["activeEnvironment"] == "blue"

    def test_dry_run_does_not_save(self, cli_runner: CliRunner, temp_config_file: str, patched_probes):
        result = cli_runner.invoke(
            cli, ["-c", temp_config_file, "--no-color", "--dry-run", "bluegreen", "deploy", "v2"]
        )

        assert result.exit_code == 0, result.output
        assert "Dry-run mode enabled" in result.output
        assert not state_file("blue-green").exists()

    def test_status_without_state(self, invoke):
        result = invoke("bluegreen", "status")

        assert result.exit_code == 0
        assert '"activeEnvironment": "blue"' in result.output
        assert '"greenVersion": ""' in result.output

    def test_status_reads_saved_state(self, invoke, patched_probes):
        invoke("bluegreen", "deploy", "v2", "--switch")

        result = invoke("bluegreen", "status")

        assert result.exit_code == 0
        assert '"activeEnvironment": "green"' in result.output
        assert '"greenVersion": "v2"' in result.output

    def test_status_table(self, invoke):
        result = invoke("-o", "table", "bluegreen", "status")

        assert result.exit_code == 0
        assert "Blue-Green: staging" in result.output
        assert "Last switch: never" in result.output
        assert "active" in result.output


class TestCanaryCommands:
    """Tests for the canary command group."""

    def test_start(self, invoke):
        result = invoke("canary", "start", "v2", "--baseline", "v1")

        assert result.exit_code == 0, result.output
        assert "Canary v2 receiving 5% of traffic" in result.output
        state = read_state("canary")
        assert state["status"] == "running"
        assert state["trafficPercentage"] == 5
        assert state["baselineVersion"] == "v1"

    def test_start_refuses_live_canary(self, invoke):
        invoke("canary", "start", "v2", "--baseline", "v1")

        result = invoke("canary", "start", "v3", "--baseline", "v1")

        assert result.exit_code == 1
        assert read_state("canary")["version"] == "v2"

    def test_adjust(self, invoke):
        invoke("canary", "start", "v2", "--baseline", "v1")

        result = invoke("canary", "adjust", "40")

        assert result.exit_code == 0, result.output
        assert "receiving 40% of traffic" in result.output
        assert read_state("canary")["trafficPercentage"] == 40

    def test_adjust_out_of_range(self, invoke):
        invoke("canary", "start", "v2", "--baseline", "v1")

        result = invoke("canary", "adjust", "150")

        assert result.exit_code == 1
        assert read_state("canary")["trafficPercentage"] == 5

    def test_adjust_without_canary(self, invoke):
        result = invoke("canary", "adjust", "40")
        assert result.exit_code == 1

    def test_pause_and_resume(self, invoke):
        invoke("canary", "start", "v2", "--baseline", "v1")

        result = invoke("canary", "pause")
        assert result.exit_code == 0, result.output
        assert read_state("canary")["status"] == "paused"

        result = invoke("canary", "resume")
        assert result.exit_code == 0, result.output
        assert read_state("canary")["status"] == "running"

    def test_promote(self, invoke):
        invoke("canary", "start", "v2", "--baseline", "v1")

        result = invoke("canary", "promote")

        assert result.exit_code == 0, result.output
        assert "promoted to 100%" in result.output
        state = read_state("canary")
        assert state["status"] == "completed"
        assert state["trafficPercentage"] == 100

    def test_rollback(self, invoke):
        invoke("canary", "start", "v2", "--baseline", "v1")

        result = invoke("canary", "rollback")

        assert result.exit_code == 0, result.output
        assert "Rolled back to v1" in result.output
        state = read_state("canary")
        assert state["status"] == "rolled_back"
        assert state["trafficPercentage"] == 0

    def test_promote_after_rollback_fails(self, invoke):
        invoke("canary", "start", "v2", "--baseline", "v1")
        invoke("canary", "rollback")

        result = invoke("canary", "promote")

        assert result.exit_code == 1
        assert read_state("canary")["status"] == "rolled_back"

    def test_new_start_after_completion(self, invoke):
        invoke("canary", "start", "v2", "--baseline", "v1")
        invoke("canary", "promote")

        result = invoke("canary", "start", "v3", "--baseline", "v2")

        assert result.exit_code == 0, result.output
        assert read_state("canary")["version"] == "v3"

    def test_status(self, invoke):
        invoke("canary", "start", "v2", "--baseline", "v1")

        result = invoke("canary", "status")

        assert result.exit_code == 0
        assert '"status": "running"' in result.output
        assert '"trafficPercentage": 5' in result.output
        assert '"baselineVersion": "v1"' in result.output


class TestHealthCommands:
    """Tests for the health command group."""

    def test_check_environment_url(self, invoke, targets: FakeTargets):
        with patch("rolloutctl.commands.health.HealthProbe", side_effect=targets.probe):
            result = invoke("health", "check")

        assert result.exit_code == 0, result.output
        assert "Health check passed: https://staging.board.test" in result.output
        assert str(targets.requests[0].url) == "https://staging.board.test/api/health"

    def test_check_slot_and_path(self, invoke, targets: FakeTargets):
        with patch("rolloutctl.commands.health.HealthProbe", side_effect=targets.probe):
            result = invoke("health", "check", "--slot", "green", "--path", "/healthz")

        assert result.exit_code == 0, result.output
        assert str(targets.requests[0].url) == "https://green-staging.board.test/healthz"

    def test_check_unhealthy_exits_nonzero(self, invoke, targets: FakeTargets):
        targets.status["down.test"] = 503
        with patch("rolloutctl.commands.health.HealthProbe", side_effect=targets.probe):
            result = invoke("health", "check", "https://down.test")

        assert result.exit_code == 1
        assert "HTTP 503" in result.output
