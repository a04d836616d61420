"""Configuration management for rolloutctl using Pydantic."""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

from rolloutctl.core.exceptions import ConfigError
from rolloutctl.core.logging import LogLevel
from rolloutctl.core.output import OutputFormat


class EnvironmentConfig(BaseModel):
    """A deployment environment (production, staging, ...)."""

    name: str
    url: str
    type: Literal["production", "staging", "development"] = "production"
    provider: Literal["vercel", "aws", "custom"] = "custom"
    region: str | None = None
    blue_url: str | None = None
    green_url: str | None = None

    def get_url(self) -> str:
        """Get base URL from config or environment."""
        env_key = f"ROLLOUTCTL_{self.name.upper().replace('-', '_')}_URL"
        return os.environ.get(env_key) or self.url

    def slot_url(self, slot: str) -> str:
        """Get the base URL serving a blue/green slot.

        Green defaults to the base URL with ``green-`` prefixed to the host.
        """
        if slot == "blue":
            return self.blue_url or self.get_url()
        if self.green_url:
            return self.green_url
        return self.get_url().replace("://", "://green-", 1)


class BlueGreenConfig(BaseModel):
    """Blue/Green deployment configuration."""

    enabled: bool = True
    auto_switch: bool = False
    switch_delay: float = 5  # minutes
    health_check_url: str = "/api/health"
    health_check_interval: float = 30  # seconds
    health_check_timeout: float = 10  # seconds
    rollback_on_failure: bool = True
    warmup_time: float = 60  # seconds
    operation_timeout: float = 300  # seconds, per deploy/switch call

    @field_validator("health_check_interval", "health_check_timeout", "operation_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("switch_delay", "warmup_time")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v


class CanaryConfig(BaseModel):
    """Canary deployment configuration."""

    enabled: bool = True
    initial_traffic_percentage: int = 10
    increment_percentage: int = 20
    increment_interval: float = 10  # minutes
    max_error_rate: float = 5  # percent
    auto_rollback: bool = True
    metrics_endpoint: str | None = "/api/metrics"
    operation_timeout: float = 60  # seconds, per traffic/metrics call

    @field_validator("initial_traffic_percentage", "increment_percentage")
    @classmethod
    def validate_percentage(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("percentage must be between 0 and 100")
        return v

    @field_validator("max_error_rate")
    @classmethod
    def validate_error_rate(cls, v: float) -> float:
        if not 0 <= v <= 100:
            raise ValueError("max_error_rate must be between 0 and 100")
        return v

    @field_validator("increment_interval", "operation_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v


class GlobalConfig(BaseModel):
    """Global settings."""

    output_format: OutputFormat = OutputFormat.TABLE
    color: str = "auto"  # auto, always, never
    verbosity: LogLevel = LogLevel.INFO
    dry_run: bool = False
    state_dir: str | None = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if v not in ("auto", "always", "never"):
            raise ValueError("color must be 'auto', 'always', or 'never'")
        return v

    def get_state_dir(self) -> Path:
        """Get snapshot directory from config or environment."""
        path = os.environ.get("ROLLOUTCTL_STATE_DIR") or self.state_dir
        if path:
            return Path(path).expanduser()
        return Path.home() / ".rolloutctl" / "state"


def _default_environments() -> list[EnvironmentConfig]:
    return [
        EnvironmentConfig(name="production", url="https://example.com", type="production"),
        EnvironmentConfig(name="staging", url="https://staging.example.com", type="staging"),
        EnvironmentConfig(
            name="development", url="http://localhost:3010", type="development"
        ),
    ]


class RolloutConfig(BaseModel):
    """Main configuration model."""

    model_config = {"populate_by_name": True}

    version: str = "1"
    global_settings: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    project_name: str = "app"
    environments: list[EnvironmentConfig] = Field(default_factory=_default_environments)
    blue_green: BlueGreenConfig = Field(default_factory=BlueGreenConfig)
    canary: CanaryConfig = Field(default_factory=CanaryConfig)

    def get_environment(self, name: str | None = None) -> EnvironmentConfig:
        """Get an environment by name, defaulting to the first one."""
        if not self.environments:
            raise ConfigError("No environments configured")
        if name is None:
            return self.environments[0]
        for environment in self.environments:
            if environment.name == name:
                return environment
        raise ConfigError(f"Environment '{name}' not found")


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    CONFIG_FILENAMES = ["rolloutctl.yaml", "rolloutctl.yml", ".rolloutctl.yaml", ".rolloutctl.yml"]

    def __init__(self):
        self._config: RolloutConfig | None = None

    def load(self, config_file: str | Path | None = None) -> RolloutConfig:
        """Load configuration from files.

        Priority (highest to lowest):
        1. Explicitly specified config file
        2. Project config (./rolloutctl.yaml)
        3. User config (~/.rolloutctl/config.yaml)

        Args:
            config_file: Optional explicit config file path

        Returns:
            Merged configuration
        """
        configs: list[dict[str, Any]] = []

        user_config_path = Path.home() / ".rolloutctl" / "config.yaml"
        if user_config_path.exists():
            configs.append(self._load_yaml_file(user_config_path))

        project_config = self._find_project_config()
        if project_config:
            configs.append(self._load_yaml_file(project_config))

        if config_file:
            config_path = Path(config_file)
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_file}")
            configs.append(self._load_yaml_file(config_path))

        merged = self._merge_configs(configs)

        try:
            self._config = RolloutConfig(**merged)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration: {e}")
        return self._config

    def _find_project_config(self) -> Path | None:
        """Find project config file in current or parent directories."""
        current = Path.cwd()

        while current != current.parent:
            for filename in self.CONFIG_FILENAMES:
                config_path = current / filename
                if config_path.exists():
                    return config_path
            current = current.parent

        return None

    def _load_yaml_file(self, path: Path) -> dict[str, Any]:
        """Load a YAML config file."""
        try:
            with open(path) as f:
                content = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}")

        if not isinstance(content, dict):
            raise ConfigError(f"Expected a mapping at the top of {path}")
        return content

    def _merge_configs(self, configs: list[dict[str, Any]]) -> dict[str, Any]:
        """Deep merge multiple configuration dictionaries."""
        result: dict[str, Any] = {}
        for config in configs:
            result = self._deep_merge(result, config)
        return result

    def _deep_merge(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


# Global config loader instance
_config_loader = ConfigLoader()


def load_config(config_file: str | Path | None = None) -> RolloutConfig:
    """Load rolloutctl configuration.

    Args:
        config_file: Optional explicit config file path

    Returns:
        Loaded configuration
    """
    return _config_loader.load(config_file)


def get_default_config() -> RolloutConfig:
    """Get default configuration without loading from files."""
    return RolloutConfig()
