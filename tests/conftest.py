"""Pytest fixtures for rolloutctl tests."""

import asyncio
import os
from typing import Any, Callable, Generator

import httpx
import pytest
from click.testing import CliRunner

from rolloutctl.config import BlueGreenConfig, CanaryConfig, EnvironmentConfig
from rolloutctl.deploy.capabilities import MetricsSource
from rolloutctl.deploy.health import HealthProbe


class FakeTargets:
    """Health endpoints keyed by host, served through ``httpx.MockTransport``.

    A status of ``None`` makes the host refuse connections. A host listed in
    ``stalls`` waits that many seconds before answering.
    """

    def __init__(self):
        self.status: dict[str, int | None] = {}
        self.stalls: dict[str, float] = {}
        self.requests: list[httpx.Request] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.stalls:
            await asyncio.sleep(self.stalls[request.url.host])
        status = self.status.get(request.url.host, 200)
        if status is None:
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(
            status,
            json={"status": "ok" if status < 400 else "error", "checks": {"db": "ok"}},
        )

    def probe(self) -> HealthProbe:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return HealthProbe(client=client)


class FakeMetricsSource(MetricsSource):
    """Metrics source returning ``data`` (or raising ``error``)."""

    def __init__(self, data: dict[str, Any] | None = None):
        self.data: dict[str, Any] = data or {}
        self.error: Exception | None = None
        self.calls: list[tuple[str, str, str]] = []

    async def fetch(self, url: str, path: str, version_tag: str) -> dict[str, Any]:
        self.calls.append((url, path, version_tag))
        if self.error is not None:
            raise self.error
        return dict(self.data)


async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 3.0,
    interval: float = 0.01,
) -> bool:
    """Poll ``condition`` until it holds or ``timeout`` expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if condition():
            return True
        await asyncio.sleep(interval)
    return condition()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def environment() -> EnvironmentConfig:
    return EnvironmentConfig(name="test", url="https://app.test", type="staging")


@pytest.fixture
def bg_config() -> BlueGreenConfig:
    """Blue-green config with no warmup and fast monitoring."""
    return BlueGreenConfig(
        warmup_time=0,
        switch_delay=0,
        health_check_interval=0.05,
        health_check_timeout=1,
        operation_timeout=1,
    )


@pytest.fixture
def canary_config() -> CanaryConfig:
    """Canary config whose increment loop never fires during a test."""
    return CanaryConfig(
        initial_traffic_percentage=10,
        increment_percentage=20,
        increment_interval=60,
        max_error_rate=5,
        operation_timeout=1,
    )


@pytest.fixture
def targets() -> FakeTargets:
    return FakeTargets()


@pytest.fixture
def metrics_source() -> FakeMetricsSource:
    return FakeMetricsSource()


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch) -> Generator[None, None, None]:
    """Isolate tests from the user's config, state and environment."""
    for key in list(os.environ):
        if key.startswith("ROLLOUTCTL_"):
            monkeypatch.delenv(key)

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("ROLLOUTCTL_STATE_DIR", str(tmp_path / "state"))

    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)

    yield


@pytest.fixture
def temp_config_file(tmp_path):
    """Create a temporary config file."""
    config_content = """
version: "1"
global:
  output_format: json
project_name: board
environments:
  - name: staging
    url: https://staging.board.test
    type: staging
blue_green:
  warmup_time: 0
  health_check_interval: 15
canary:
  initial_traffic_percentage: 5
"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(config_content)
    return str(config_file)

