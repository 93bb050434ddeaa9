"""
Provider interface and registry.

Each remote service is one SyncProvider subclass registered under its
configuration name. The manager builds providers from their SyncConfig
through create_provider, so adding a provider never touches dispatch code.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, ClassVar

from dashboard_sync.api.base import GoogleAPIClient
from dashboard_sync.auth.gateway import CredentialGateway
from dashboard_sync.config.loader import SyncSettings
from dashboard_sync.config.sync_config import SyncConfig, SyncConfigError
from dashboard_sync.errors import SyncError, SyncErrorKind
from dashboard_sync.storage.collections import CollectionRepository
from dashboard_sync.storage.db import LocalStore
from dashboard_sync.sync.engine import ReconciliationEngine, SyncResult
from dashboard_sync.sync.records import (
    LocalRecord,
    RemoteCollection,
    RemoteRecord,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# Registered provider classes keyed by configuration name
PROVIDER_TYPES: dict[str, type[SyncProvider]] = {}

# Title given to remote records that have none
UNTITLED = "Untitled"


def has_pending_edit(local: LocalRecord, remote: LocalRecord) -> bool:
    """
    Check whether a stored record carries a local edit the remote lacks.

    The record must have been synced before and modified since. A remote
    version last updated after that sync is a conflict, which the remote
    wins; a remote version without an update time never is.
    """
    synced = parse_timestamp(local.synced_at)
    if synced is None or not local.is_modified_since_sync():
        return False
    remote_updated = parse_timestamp(remote.updated_at)
    return remote_updated is None or remote_updated <= synced


def register_provider(
    name: str,
) -> Callable[[type[SyncProvider]], type[SyncProvider]]:
    """
    Class decorator registering a provider under a configuration name.

    Usage:
        @register_provider("google-tasks")
        class GoogleTasksProvider(SyncProvider):
            ...
    """

    def decorator(cls: type[SyncProvider]) -> type[SyncProvider]:
        cls.name = name
        PROVIDER_TYPES[name] = cls
        return cls

    return decorator


class SyncProvider(ABC):
    """
    A remote service that local records can be synced with.

    Subclasses supply the client, the record mapping and the default
    collection rule; the sync algorithm itself lives in the engine.

    Attributes:
        config: Persisted configuration of this provider
        engine: Reconciliation engine running this provider's syncs
    """

    name: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    # Prefix of linked record ids
    tag: ClassVar[str] = "google"
    # Local storage namespace of the provider's collections
    namespace: ClassVar[str] = "todos"
    oauth_provider: ClassVar[str] = "google"
    # Fields kept from the local record when the remote version is pulled
    local_only_fields: ClassVar[tuple[str, ...]] = ("created_at",)

    def __init__(
        self,
        config: SyncConfig,
        gateway: CredentialGateway,
        repository: CollectionRepository,
        settings: SyncSettings | None = None,
        on_config_change: Callable[[SyncConfig], None] | None = None,
    ):
        self.config = config
        self.settings = settings or SyncSettings()
        self.repository = repository
        self.engine = ReconciliationEngine(
            self,
            gateway,
            repository,
            settings=self.settings,
            on_config_change=on_config_change,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(enabled={self.enabled})"

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    # =========================================================================
    # Provider hooks
    # =========================================================================

    @abstractmethod
    def build_client(self, token: str) -> GoogleAPIClient:
        """Create the remote collection client for an access token."""

    @abstractmethod
    def record_to_payload(
        self, record: LocalRecord, for_create: bool
    ) -> dict[str, Any]:
        """Convert a local record into the provider's request body."""

    @abstractmethod
    def record_from_remote(
        self, remote: RemoteRecord, collection: RemoteCollection
    ) -> LocalRecord | None:
        """Convert a remote record into a linked local record, or None to skip it."""

    @abstractmethod
    def select_default_collection(
        self, client: GoogleAPIClient, collections: list[RemoteCollection]
    ) -> RemoteCollection | None:
        """Pick the collection to sync with when none is configured."""

    def merge_remote(self, local: LocalRecord, remote: LocalRecord) -> LocalRecord:
        """
        Combine a stored record with its freshly pulled version.

        A local edit made since the last sync is kept, along with its old
        synced_at, unless the remote record changed after that sync too;
        the push step then sends it as an update. Otherwise the remote
        version wins for every field except local_only_fields.
        """
        if has_pending_edit(local, remote):
            logger.debug(f"Keeping local edit of {local.id}")
            return local

        for field_name in self.local_only_fields:
            value = getattr(local, field_name)
            if value not in (None, ""):
                setattr(remote, field_name, value)
        return remote

    # =========================================================================
    # Public sync surface
    # =========================================================================

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise SyncError(
                SyncErrorKind.SYNC_FAILED, f"{self.display_name} sync is disabled"
            )

    def sync(self) -> SyncResult:
        """Run a full pull-then-push sync. Never raises."""
        return self.engine.sync()

    def push_todos(
        self, records: list[LocalRecord], collection_name: str | None = None
    ) -> dict[str, str]:
        """
        Push records and return the local id to linked id map.

        Raises:
            SyncError: If the provider is disabled or unreachable
        """
        self._require_enabled()
        return self.engine.push_records(records, collection_name)

    def pull_todos(self, collection_name: str | None = None) -> list[LocalRecord]:
        """
        Fetch the records of a remote collection.

        Raises:
            SyncError: If the provider is disabled or the fetch fails
        """
        self._require_enabled()
        return self.engine.pull_records(collection_name)

    def delete_task(
        self, remote_linked_id: str, collection_name: str | None = None
    ) -> None:
        """
        Delete a linked record remotely. Already deleted records are fine.

        Raises:
            SyncError: If the provider is disabled or the delete fails
        """
        self._require_enabled()
        self.engine.delete_remote(remote_linked_id, collection_name)

    def delete_local_record(self, collection_id: str, record_id: str) -> list[str]:
        """Delete a record locally and remotely; see the engine for details."""
        return self.engine.delete_local_record(collection_id, record_id)


def create_provider(
    config: SyncConfig,
    gateway: CredentialGateway,
    store: LocalStore,
    settings: SyncSettings | None = None,
    on_config_change: Callable[[SyncConfig], None] | None = None,
    registry: dict[str, type[SyncProvider]] | None = None,
) -> SyncProvider:
    """
    Build the provider registered under config.provider.

    Raises:
        SyncConfigError: If no provider is registered under that name
    """
    registry = PROVIDER_TYPES if registry is None else registry
    provider_cls = registry.get(config.provider)
    if provider_cls is None:
        raise SyncConfigError(
            f"Unknown provider '{config.provider}'. "
            f"Must be one of: {', '.join(sorted(registry))}"
        )

    repository = CollectionRepository(store, namespace=provider_cls.namespace)
    return provider_cls(
        config,
        gateway,
        repository,
        settings=settings,
        on_config_change=on_config_change,
    )
