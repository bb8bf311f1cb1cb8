"""Configuration loading and management."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..utils.logging import ConfigurationError

ENV_PREFIX = "STATE_UPGRADER_"
DEFAULT_STATE_KEY_PREFIX = "state_upgrader.upgrader.state+"


def _default_database_url() -> str:
    db_path = Path.home() / ".state-upgrader" / "state.db"
    return f"sqlite:///{db_path}"


class UpgraderConfig(BaseModel):
    """Configuration model for state-upgrader."""

    # Persistence
    database_url: str = Field(
        default_factory=_default_database_url,
        description="SQLAlchemy URL of the database holding upgrade state",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")
    state_key_prefix: str = Field(
        default=DEFAULT_STATE_KEY_PREFIX,
        description="Namespace prepended to plan names to form state keys",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str | None = Field(default=None, description="Log file path")
    structured_logging: bool = Field(
        default=True, description="Emit JSON log lines instead of plain text"
    )

    @field_validator("state_key_prefix")
    @classmethod
    def _prefix_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("state_key_prefix must not be empty")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return value


def find_config_file(custom_path: str | None = None) -> Path | None:
    """Find configuration file in standard locations."""
    if custom_path:
        path = Path(custom_path).expanduser()
        if path.exists():
            return path
        raise FileNotFoundError(f"Config file not found: {custom_path}")

    search_paths = [
        Path.cwd() / "state-upgrader.yaml",
        Path.cwd() / "state-upgrader.yml",
        Path.home() / ".config" / "state-upgrader" / "config.yaml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in config file {config_path}: {e}"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read config file {config_path}: {e}"
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping"
        )
    return data


def load_env_vars() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    env_mappings = {
        f"{ENV_PREFIX}DATABASE_URL": "database_url",
        f"{ENV_PREFIX}ECHO": "echo",
        f"{ENV_PREFIX}STATE_KEY_PREFIX": "state_key_prefix",
        f"{ENV_PREFIX}LOG_LEVEL": "log_level",
        f"{ENV_PREFIX}LOG_FILE": "log_file",
        f"{ENV_PREFIX}STRUCTURED_LOGGING": "structured_logging",
    }

    for env_var, config_key in env_mappings.items():
        if env_var in os.environ:
            env_value = os.environ[env_var]
            if config_key in ("echo", "structured_logging"):
                config[config_key] = env_value.lower() in ("true", "1", "yes", "on")
            else:
                config[config_key] = env_value

    return config


def load_config(
    config_path: str | None = None,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> UpgraderConfig:
    """Load configuration from file and environment variables.

    Precedence order (highest to lowest):
    1. CLI flag overrides
    2. Environment variables
    3. Configuration file (with profile support)
    4. Default values
    """
    config_data: dict[str, Any] = {}

    config_file = find_config_file(config_path)
    if config_file:
        file_data = load_config_file(config_file)
        config_data.update({k: v for k, v in file_data.items() if k != "profiles"})

        profiles = file_data.get("profiles") or {}
        if profile:
            if profile not in profiles:
                raise ConfigurationError(
                    f"Profile '{profile}' not found in {config_file}"
                )
            config_data.update(profiles[profile])

    config_data.update(load_env_vars())

    if cli_overrides:
        config_data.update({k: v for k, v in cli_overrides.items() if v is not None})

    try:
        return UpgraderConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
