"""Controller state persistence."""

import json
from pathlib import Path
from typing import Any

from rolloutctl.core.exceptions import DeploymentError
from rolloutctl.core.logging import get_logger

logger = get_logger(__name__)


class StateStore:
    """Persist controller state snapshots as JSON files.

    One file per environment and controller:
    ``<state_dir>/<environment>-<controller>.json``.
    """

    def __init__(self, state_dir: str | Path | None = None):
        """Initialize the store.

        Args:
            state_dir: Directory to store state snapshots
        """
        if state_dir:
            self._state_dir = Path(state_dir)
        else:
            self._state_dir = Path.home() / ".rolloutctl" / "state"
        self._state_dir.mkdir(parents=True, exist_ok=True)

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    def _path(self, environment: str, controller: str) -> Path:
        return self._state_dir / f"{environment}-{controller}.json"

    def save(self, environment: str, controller: str, state: dict[str, Any]) -> None:
        """Save a state snapshot.

        Args:
            environment: Environment name
            controller: Controller name (``blue-green`` or ``canary``)
            state: Serialized state, as returned by ``to_dict()``
        """
        state_file = self._path(environment, controller)

        try:
            with open(state_file, "w") as f:
                json.dump(state, f, indent=2)

            logger.debug(f"Saved {controller} state for {environment} to {state_file}")

        except (OSError, TypeError) as e:
            raise DeploymentError(
                f"Failed to save {controller} state: {e}",
                details={"environment": environment},
            )

    def load(self, environment: str, controller: str) -> dict[str, Any] | None:
        """Load a state snapshot.

        Returns:
            The saved state, or None if nothing was saved yet
        """
        state_file = self._path(environment, controller)

        if not state_file.exists():
            return None

        try:
            with open(state_file) as f:
                data = json.load(f)

        except (OSError, ValueError) as e:
            raise DeploymentError(
                f"Failed to load {controller} state: {e}",
                details={"environment": environment},
            )

        if not isinstance(data, dict):
            raise DeploymentError(
                f"Corrupt {controller} state file: {state_file}",
                details={"environment": environment},
            )
        return data

    def delete(self, environment: str, controller: str) -> bool:
        """Delete a state snapshot.

        Returns:
            True if a snapshot was removed
        """
        state_file = self._path(environment, controller)

        if state_file.exists():
            state_file.unlink()
            logger.debug(f"Deleted {controller} state for {environment}")
            return True
        return False
