"""
Sync manager owning every configured provider.

The manager loads provider configurations from the local store, builds
the registered provider for each one and runs syncs. Changing a
provider's configuration persists the full configuration list.
"""

from __future__ import annotations

import logging

import dashboard_sync.providers  # noqa: F401  (registers built-in providers)
from dashboard_sync.auth.gateway import CredentialGateway
from dashboard_sync.config.loader import SyncSettings
from dashboard_sync.config.sync_config import (
    SyncConfig,
    SyncConfigError,
    load_sync_configs,
    save_sync_configs,
)
from dashboard_sync.errors import SyncError, SyncErrorKind, classify, user_message
from dashboard_sync.providers.base import SyncProvider, create_provider
from dashboard_sync.storage.db import LocalStore
from dashboard_sync.sync.engine import SyncResult

logger = logging.getLogger(__name__)


class SyncManager:
    """
    Registry of configured sync providers.

    Attributes:
        store: Local store holding configurations and collections
        gateway: Credential gateway shared by every provider
        settings: Application sync settings
        last_results: Result of the most recent sync of each provider

    Usage:
        manager = SyncManager(store, GoogleAuth())
        manager.load()
        manager.sync_all()
    """

    def __init__(
        self,
        store: LocalStore,
        gateway: CredentialGateway,
        settings: SyncSettings | None = None,
        registry: dict[str, type[SyncProvider]] | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings or SyncSettings()
        self.registry = registry
        self.last_results: dict[str, SyncResult] = {}
        self._providers: dict[str, SyncProvider] = {}

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    # =========================================================================
    # Configuration
    # =========================================================================

    def _build(self, config: SyncConfig) -> SyncProvider:
        return create_provider(
            config,
            self.gateway,
            self.store,
            settings=self.settings,
            on_config_change=self._persist_config,
            registry=self.registry,
        )

    def _persist_config(self, config: SyncConfig) -> None:
        """Save every configuration after one of them changed."""
        logger.debug(f"Persisting configuration change of {config.provider}")
        self._save()

    def _save(self) -> bool:
        return save_sync_configs(self.store, self.get_configs())

    def load(self) -> int:
        """
        Build providers from the stored configurations.

        Configurations naming an unknown provider are skipped with a
        warning.

        Returns:
            Number of providers loaded
        """
        self._providers.clear()
        for config in load_sync_configs(self.store):
            try:
                self._providers[config.provider] = self._build(config)
            except SyncConfigError as e:
                logger.warning(f"Skipping provider configuration: {e}")

        logger.debug(f"Loaded {len(self._providers)} provider(s)")
        return len(self._providers)

    def add_provider(self, config: SyncConfig) -> SyncProvider:
        """
        Register a provider, replacing any existing one of the same name.

        Raises:
            SyncConfigError: If the provider name is not registered
        """
        provider = self._build(config)
        replaced = config.provider in self._providers
        self._providers[config.provider] = provider
        self._save()
        logger.info(f"{'Updated' if replaced else 'Added'} provider {config.provider}")
        return provider

    def remove_provider(self, name: str) -> bool:
        """
        Remove a provider. Removing an unknown provider is a no-op.

        Returns:
            True if a provider was removed
        """
        if self._providers.pop(name, None) is None:
            return False
        self._save()
        logger.info(f"Removed provider {name}")
        return True

    def set_enabled(self, name: str, enabled: bool) -> SyncProvider:
        """
        Enable or disable a provider.

        Raises:
            KeyError: If the provider is not configured
        """
        provider = self._providers[name]
        provider.config.enabled = enabled
        self._save()
        logger.info(f"{'Enabled' if enabled else 'Disabled'} provider {name}")
        return provider

    def get_provider(self, name: str) -> SyncProvider | None:
        return self._providers.get(name)

    def get_all_providers(self) -> list[SyncProvider]:
        return list(self._providers.values())

    def get_enabled_providers(self) -> list[SyncProvider]:
        return [provider for provider in self._providers.values() if provider.enabled]

    def get_configs(self) -> list[SyncConfig]:
        return [provider.config for provider in self._providers.values()]

    # =========================================================================
    # Syncing
    # =========================================================================

    def sync_provider(self, name: str) -> SyncResult:
        """
        Sync one provider.

        Raises:
            KeyError: If the provider is not configured
        """
        provider = self._providers[name]
        result = provider.sync()
        self.last_results[name] = result
        return result

    def sync_all(self, providers: list[SyncProvider] | None = None) -> None:
        """
        Sync every enabled provider, one after another.

        A provider that fails never stops the others. Providers whose
        account is not connected are skipped. Results are kept in
        last_results.

        Args:
            providers: Providers to sync; every enabled provider when None
        """
        targets = self.get_enabled_providers() if providers is None else providers
        if not targets:
            logger.info("No enabled providers to sync")
            return

        for provider in targets:
            name = provider.config.provider
            try:
                if not self.gateway.is_connected(provider.oauth_provider):
                    error = SyncError(
                        SyncErrorKind.AUTH_REQUIRED,
                        f"{provider.oauth_provider} account is not connected",
                    )
                    logger.warning(f"Skipping {name}: {error.message}")
                    self.last_results[name] = SyncResult(
                        success=False,
                        message=f"{provider.display_name} skipped: "
                        f"{user_message(error)}",
                        error=error,
                    )
                    continue

                result = provider.sync()
            except Exception as e:
                error = classify(e)
                logger.error(f"Sync of {name} failed: {error.message}")
                result = SyncResult(
                    success=False,
                    message=f"{provider.display_name} sync failed: "
                    f"{user_message(error)}",
                    error=error,
                )

            self.last_results[name] = result
            if result.success:
                logger.info(result.message)
            else:
                logger.warning(result.message)
