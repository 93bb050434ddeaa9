"""
Per-provider sync configuration.

One SyncConfig exists per connected provider. The list is persisted in the
local store under the "todos:sync-config" key:

    [
        {
            "provider": "google-tasks",
            "enabled": true,
            "credentials": {"oauthProvider": "google"},
            "collectionId": "MTIzNDU2",
            "autoSync": true,
            "syncInterval": 15
        }
    ]

Notes:
    - credentials holds a reference to the OAuth connection, never a token
    - collectionId is filled in after the first sync discovers the target
      remote collection
    - syncInterval is expressed in minutes
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from dashboard_sync.storage.db import LocalStore

logger = logging.getLogger(__name__)

# Storage key holding the list of provider configurations
SYNC_CONFIG_KEY = "todos:sync-config"

# Default auto-sync interval in minutes
DEFAULT_SYNC_INTERVAL = 15


class SyncConfigError(Exception):
    """Raised when sync configuration loading or validation fails."""

    pass


@dataclass
class SyncConfig:
    """
    Configuration of one sync provider.

    Attributes:
        provider: Registered provider name (e.g. "google-tasks")
        enabled: Whether sync_all() includes this provider
        credentials: Reference to the credential used by the provider
        collection_id: Remote collection to sync with, once known
        auto_sync: Whether the scheduler syncs this provider
        sync_interval: Auto-sync interval in minutes
    """

    provider: str
    enabled: bool = True
    credentials: dict[str, Any] = field(default_factory=dict)
    collection_id: str | None = None
    auto_sync: bool = False
    sync_interval: int = DEFAULT_SYNC_INTERVAL

    def __post_init__(self) -> None:
        if not isinstance(self.provider, str) or not self.provider.strip():
            raise SyncConfigError("provider must be a non-empty string")
        if not isinstance(self.sync_interval, int) or self.sync_interval < 1:
            raise SyncConfigError(
                f"syncInterval must be a positive integer, got {self.sync_interval!r}"
            )

    @property
    def oauth_provider(self) -> str | None:
        """OAuth connection name referenced by the credentials."""
        value = self.credentials.get("oauthProvider")
        return str(value) if value else None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """
        Create SyncConfig from its stored dictionary form.

        Raises:
            SyncConfigError: If data is not a mapping or has invalid fields
        """
        if not isinstance(data, dict):
            raise SyncConfigError(
                f"sync config must be a dictionary, got {type(data).__name__}"
            )

        if "provider" not in data:
            raise SyncConfigError("sync config is missing 'provider'")

        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise SyncConfigError(
                f"'enabled' must be a boolean, got {type(enabled).__name__}"
            )

        credentials = data.get("credentials") or {}
        if not isinstance(credentials, dict):
            raise SyncConfigError(
                f"'credentials' must be a dictionary, got {type(credentials).__name__}"
            )

        return cls(
            provider=data["provider"],
            enabled=enabled,
            credentials=dict(credentials),
            collection_id=data.get("collectionId"),
            auto_sync=bool(data.get("autoSync", False)),
            sync_interval=data.get("syncInterval", DEFAULT_SYNC_INTERVAL),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "provider": self.provider,
            "enabled": self.enabled,
            "credentials": dict(self.credentials),
            "autoSync": self.auto_sync,
            "syncInterval": self.sync_interval,
        }
        if self.collection_id:
            data["collectionId"] = self.collection_id
        return data


def load_sync_configs(store: LocalStore) -> list[SyncConfig]:
    """
    Load all provider configurations from the store.

    Invalid entries are skipped with a warning. When the same provider
    appears twice, the last entry wins.
    """
    raw = store.get(SYNC_CONFIG_KEY, [])
    if not isinstance(raw, list):
        logger.warning(
            f"Ignoring malformed sync config: expected a list, "
            f"got {type(raw).__name__}"
        )
        return []

    configs: dict[str, SyncConfig] = {}
    for item in raw:
        try:
            config = SyncConfig.from_dict(item)
        except SyncConfigError as e:
            logger.warning(f"Skipping invalid sync config {item!r}: {e}")
            continue
        configs[config.provider] = config

    return list(configs.values())


def save_sync_configs(store: LocalStore, configs: list[SyncConfig]) -> bool:
    """Persist provider configurations. Failures are logged, not raised."""
    return store.set(SYNC_CONFIG_KEY, [config.to_dict() for config in configs])
