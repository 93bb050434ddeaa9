"""
Configuration loader for dashboard-sync settings.

Provides YAML-based configuration file loading with support for:
- Loading configuration from default or custom paths
- Graceful handling of missing configuration files
- Type and range validation of known keys
- Conversion into a typed SyncSettings object
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from dashboard_sync.utils.paths import resolve_config_dir

# Default configuration file name
DEFAULT_CONFIG_FILE = "config.yaml"

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


@dataclass
class SyncSettings:
    """
    Application-wide sync settings.

    Attributes:
        default_collection_name: Remote collection created when none exists
        max_concurrency: Concurrent in-flight writes per batch window
        retry_max_attempts: Attempts for retried remote reads and refreshes
        retry_base_delay: First backoff delay in seconds
        api_page_size: Items requested per page when listing
        api_timeout: Network timeout in seconds for API calls
        calendar_window_days: Days before and after today pulled from calendars
        log_dir: Directory for log files (None for the default location)
        database_file: SQLite file name inside the config directory
        daemon_interval: Auto-sync interval for the daemon (e.g. "5m")
    """

    default_collection_name: str = "Dashboard Personnel"
    max_concurrency: int = 10
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    api_page_size: int = 100
    api_timeout: int = 30
    calendar_window_days: int = 90
    log_dir: str | None = None
    database_file: str = "dashboard.db"
    daemon_interval: str = "5m"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSettings:
        """Create settings from a validated config dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


class ConfigLoader:
    """
    YAML configuration file loader.

    Attributes:
        config_dir: Directory containing the configuration file
        config_file: Name of the configuration file

    Usage:
        loader = ConfigLoader()
        settings = loader.load_settings()

        # With custom path
        loader = ConfigLoader(config_dir=Path("/custom/path"))
        config = loader.load()
    """

    def __init__(
        self, config_dir: Path | None = None, config_file: str = DEFAULT_CONFIG_FILE
    ):
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory containing the configuration file.
                       Defaults to ~/.dashboard-sync/ or $DASHBOARD_SYNC_CONFIG_DIR
            config_file: Name of the configuration file (default: config.yaml)
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.config_file = config_file

    def _get_config_path(self) -> Path:
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """
        Load configuration from the default configuration file.

        Returns:
            Dictionary containing configuration values, or empty dict if file
            doesn't exist

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        return self.load_from_file(self._get_config_path())

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Load configuration from a specific file.

        Args:
            path: Path to the configuration file

        Returns:
            Dictionary containing configuration values, or empty dict if file
            doesn't exist

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        path = Path(path)

        if not path.exists():
            logger.debug(f"Configuration file not found: {path}")
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}") from e

        if config is None:
            logger.debug(f"Configuration file is empty: {path}")
            return {}

        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration file must contain a YAML dictionary, "
                f"got {type(config).__name__}"
            )

        logger.debug(f"Loaded configuration from {path}")
        return config

    def validate(self, config: dict[str, Any]) -> None:
        """
        Validate configuration types and values.

        Unknown keys are allowed and ignored.

        Raises:
            ConfigError: If configuration is invalid
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        valid_keys: dict[str, type[Any] | tuple[type[Any], ...]] = {
            # Sync options
            "default_collection_name": str,
            "max_concurrency": int,
            "calendar_window_days": int,
            # Retry options
            "retry_max_attempts": int,
            "retry_base_delay": (int, float),
            # API options
            "api_page_size": int,
            "api_timeout": int,
            # Logging options
            "log_dir": str,
            # Storage options
            "database_file": str,
            # Daemon options
            "daemon_interval": (str, int),
        }

        for key, value in config.items():
            if key not in valid_keys:
                continue
            expected_type = valid_keys[key]
            # bool is an int subclass; reject it for numeric options
            if isinstance(value, bool) or not isinstance(value, expected_type):
                if isinstance(expected_type, tuple):
                    type_name = " or ".join(t.__name__ for t in expected_type)
                else:
                    type_name = expected_type.__name__
                raise ConfigError(
                    f"Invalid type for '{key}': expected {type_name}, "
                    f"got {type(value).__name__}"
                )

        if "default_collection_name" in config:
            if not config["default_collection_name"].strip():
                raise ConfigError("default_collection_name must not be empty")

        positive_int_keys = [
            "max_concurrency",
            "retry_max_attempts",
            "api_page_size",
            "api_timeout",
            "calendar_window_days",
        ]
        for key in positive_int_keys:
            if key in config and config[key] < 1:
                raise ConfigError(f"{key} must be >= 1, got {config[key]}")

        # Tasks and Calendar both cap page sizes
        if "api_page_size" in config and config["api_page_size"] > 250:
            raise ConfigError(
                f"api_page_size must be <= 250, got {config['api_page_size']}"
            )

        if "retry_base_delay" in config and config["retry_base_delay"] <= 0:
            raise ConfigError(
                f"retry_base_delay must be > 0, got {config['retry_base_delay']}"
            )

    def load_and_validate(self) -> dict[str, Any]:
        """
        Load configuration and validate it.

        Raises:
            ConfigError: If configuration cannot be loaded or is invalid
        """
        config = self.load()
        if config:
            self.validate(config)
        return config

    def load_settings(self) -> SyncSettings:
        """Load, validate and convert the configuration into SyncSettings."""
        return SyncSettings.from_dict(self.load_and_validate())
