"""HTTP metrics source for canary analysis."""

from typing import Any

import httpx

from rolloutctl.core.exceptions import MetricsError
from rolloutctl.core.logging import get_logger
from rolloutctl.deploy.capabilities import MetricsSource

logger = get_logger(__name__)


class HttpMetricsSource(MetricsSource):
    """Fetch canary metrics from a JSON endpoint.

    The requested version is sent in the ``X-Canary-Version`` header.
    """

    def __init__(self, timeout: float = 10, client: httpx.AsyncClient | None = None):
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        return self._client

    async def fetch(self, url: str, path: str, version_tag: str) -> dict[str, Any]:
        """Fetch metrics for ``version_tag``.

        Raises:
            MetricsError: On transport errors, non-2xx responses or a
                non-object body
        """
        target = url.rstrip("/") + "/" + path.lstrip("/")

        try:
            response = await self.client.get(
                target,
                headers={"X-Canary-Version": version_tag},
            )
            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            raise MetricsError(
                f"Metrics endpoint returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            )

        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise MetricsError(f"Request failed: {e}")

        except ValueError as e:
            raise MetricsError(f"Invalid metrics response: {e}")

        if not isinstance(data, dict):
            raise MetricsError("Metrics response must be a JSON object")

        logger.debug(f"Fetched metrics for {version_tag} from {target}")
        return data

    async def aclose(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpMetricsSource":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
