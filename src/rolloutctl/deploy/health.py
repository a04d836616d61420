"""Health probe for deployment targets using httpx."""

import time
from dataclasses import dataclass
from typing import Any

import httpx

from rolloutctl.core.async_utils import run_with_timeout
from rolloutctl.core.exceptions import TimeoutError
from rolloutctl.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class HealthResult:
    """Outcome of a single health probe."""

    healthy: bool
    status_code: int | None = None
    response_time_ms: float | None = None
    error: str | None = None
    checks: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "healthy": self.healthy,
            "statusCode": self.status_code,
            "responseTime": self.response_time_ms,
            "error": self.error,
            "checks": self.checks,
        }


class HealthProbe:
    """Single, timeout-bounded health request against a target.

    Never raises on transport problems: every failure comes back as
    ``HealthResult(healthy=False, error=...)``. Retrying is the caller's call.
    """

    HEADERS = {"X-Health-Check": "true", "Accept": "application/json"}

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(headers=self.HEADERS, follow_redirects=True)
        return self._client

    async def check(
        self,
        target_url: str,
        path: str,
        timeout_seconds: float,
    ) -> HealthResult:
        """Probe ``target_url + path``.

        Args:
            target_url: Base URL of the target
            path: Health endpoint path
            timeout_seconds: Hard deadline for the whole request

        Returns:
            HealthResult
        """
        url = target_url.rstrip("/") + "/" + path.lstrip("/") if path else target_url
        started = time.monotonic()

        try:
            # httpx enforces per-phase timeouts; the outer deadline covers the whole call
            response = await run_with_timeout(
                self.client.get(url, headers=self.HEADERS, timeout=timeout_seconds),
                timeout_seconds,
                f"Health check timed out after {timeout_seconds}s",
            )
        except TimeoutError as e:
            logger.debug(f"Health check timed out: {url}")
            return HealthResult(healthy=False, error=e.message)
        except httpx.TimeoutException:
            logger.debug(f"Health check timed out: {url}")
            return HealthResult(
                healthy=False,
                error=f"Health check timed out after {timeout_seconds}s",
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug(f"Health check request failed: {url}: {e}")
            return HealthResult(healthy=False, error=str(e) or type(e).__name__)

        response_time_ms = (time.monotonic() - started) * 1000

        if not response.is_success:
            return HealthResult(
                healthy=False,
                status_code=response.status_code,
                response_time_ms=response_time_ms,
                error=f"HTTP {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError as e:
            return HealthResult(
                healthy=False,
                status_code=response.status_code,
                response_time_ms=response_time_ms,
                error=f"Invalid health response: {e}",
            )

        checks = data.get("checks") if isinstance(data, dict) else None
        return HealthResult(
            healthy=True,
            status_code=response.status_code,
            response_time_ms=response_time_ms,
            checks=checks if isinstance(checks, dict) else None,
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this probe created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HealthProbe":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
