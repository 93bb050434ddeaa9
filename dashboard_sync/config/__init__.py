"""
dashboard_sync.config - Configuration management module

Contains settings file loading and validation, and the per-provider sync
configurations kept in the local store.
"""

from dashboard_sync.config.loader import ConfigError, ConfigLoader, SyncSettings
from dashboard_sync.config.sync_config import (
    SYNC_CONFIG_KEY,
    SyncConfig,
    SyncConfigError,
    load_sync_configs,
    save_sync_configs,
)

__all__ = [
    "ConfigError",
    "ConfigLoader",
    "SyncSettings",
    "SYNC_CONFIG_KEY",
    "SyncConfig",
    "SyncConfigError",
    "load_sync_configs",
    "save_sync_configs",
]
