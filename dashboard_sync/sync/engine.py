"""
Reconciliation engine for one sync provider.

A sync attempt runs these steps in order and stops at the first
unrecoverable failure:

    ResolveCredential -> DiscoverCollections -> AutoCreateMissingLocal
    -> Pull -> Push -> Done

Pulled records take the remote version of their fields unless they carry
a local edit the remote has not overtaken. Pushed records that were
created remotely get their id rewritten to the provider-prefixed form so
later syncs recognise them without any stored mapping. A linked record
whose remote copy is gone when updated is unlinked and created again on
the next sync.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dashboard_sync.api.base import GoogleAPIClient
from dashboard_sync.auth.gateway import CredentialGateway
from dashboard_sync.config.loader import SyncSettings
from dashboard_sync.config.sync_config import SyncConfig
from dashboard_sync.errors import (
    SyncError,
    SyncErrorKind,
    classify,
    is_auth_error,
    user_message,
)
from dashboard_sync.storage.collections import CollectionRepository
from dashboard_sync.sync.batch import (
    OperationResult,
    execute_create_batch,
    execute_update_batch,
    group_by_operation,
)
from dashboard_sync.sync.records import (
    LinkedId,
    LocalCollection,
    LocalRecord,
    RemoteCollection,
    link_id,
    new_local_id,
    parse_record_id,
    utc_now_iso,
)
from dashboard_sync.sync.retry import retry_with_backoff
from dashboard_sync.utils.normalization import names_match

if TYPE_CHECKING:
    from dashboard_sync.providers.base import SyncProvider

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """
    Outcome of one sync attempt.

    Attributes:
        success: Whether every step completed
        message: Human readable summary
        todos_pushed: Records written to the provider
        todos_pulled: Records read from the provider
        error: Classified failure when success is False
        warnings: Non-fatal problems (failed items, fallbacks)
        id_map: Local id to linked id for records created remotely
    """

    success: bool
    message: str
    todos_pushed: int = 0
    todos_pulled: int = 0
    error: SyncError | None = None
    warnings: list[str] = field(default_factory=list)
    id_map: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "todosPushed": self.todos_pushed,
            "todosPulled": self.todos_pulled,
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data


def merge_records(
    existing: list[LocalRecord],
    pulled: list[LocalRecord],
    merge: Callable[[LocalRecord, LocalRecord], LocalRecord] | None = None,
) -> list[LocalRecord]:
    """
    Merge pulled records into a local collection.

    A pulled record whose id already exists replaces the local one (remote
    wins, through merge when given); otherwise it is appended. Repeated
    ids, whether already stored twice or pulled twice, collapse into one
    record.

    Args:
        existing: Records currently stored in the collection
        pulled: Records mapped from the remote collection
        merge: Combines (local, remote) into the stored record

    Returns:
        The merged records, local order preserved
    """
    merged: list[LocalRecord] = []
    index: dict[str, int] = {}

    for record in existing:
        if record.id in index:
            logger.warning(f"Dropping duplicate local record {record.id}")
            continue
        index[record.id] = len(merged)
        merged.append(record)

    for record in pulled:
        position = index.get(record.id)
        if position is None:
            index[record.id] = len(merged)
            merged.append(record)
        else:
            local = merged[position]
            merged[position] = merge(local, record) if merge else record

    return merged


class ReconciliationEngine:
    """
    Runs sync attempts for one provider.

    The engine never runs two attempts at once: a sync() call made while
    another one is in flight returns a failed result immediately.

    Attributes:
        provider: Provider supplying the client and record mapping
        gateway: Source of access tokens
        repository: Local collections of the provider's namespace
        settings: Application sync settings

    Usage:
        engine = ReconciliationEngine(provider, gateway, repository, settings)
        result = engine.sync()
        if not result.success:
            print(result.message)
    """

    def __init__(
        self,
        provider: SyncProvider,
        gateway: CredentialGateway,
        repository: CollectionRepository,
        settings: SyncSettings | None = None,
        on_config_change: Callable[[SyncConfig], None] | None = None,
    ):
        self.provider = provider
        self.gateway = gateway
        self.repository = repository
        self.settings = settings or SyncSettings()
        self.on_config_change = on_config_change
        self._lock = threading.Lock()

    @property
    def in_progress(self) -> bool:
        """Whether a sync attempt is currently running."""
        return self._lock.locked()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _retry(self, operation: Callable[[], Any], operation_name: str) -> Any:
        return retry_with_backoff(
            operation,
            operation_name,
            max_attempts=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay,
        )

    def _connect(self) -> GoogleAPIClient:
        """
        Resolve an access token and build the provider client.

        Raises:
            SyncError: If no valid token can be obtained
        """
        oauth_provider = self.provider.oauth_provider
        try:
            token = self.gateway.get_valid_access_token(oauth_provider)
        except SyncError:
            raise
        except Exception as e:
            raise classify(e) from e
        return self.provider.build_client(token)

    def _remember_target(self, target: RemoteCollection) -> None:
        """Persist the target collection id in the provider config."""
        config = self.provider.config
        if config.collection_id != target.id:
            config.collection_id = target.id
            if self.on_config_change is not None:
                self.on_config_change(config)

    def _forget_target(self) -> None:
        config = self.provider.config
        if config.collection_id is not None:
            config.collection_id = None
            if self.on_config_change is not None:
                self.on_config_change(config)

    def _list_collections(self, client: GoogleAPIClient) -> list[RemoteCollection]:
        collections: list[RemoteCollection] = self._retry(
            client.list_collections, "List collections"
        )
        return collections

    def _discover_target(
        self, client: GoogleAPIClient, collections: list[RemoteCollection]
    ) -> RemoteCollection:
        """
        Find the remote collection this provider syncs with.

        Order: the configured collection id, the provider's default rule,
        and finally a newly created collection named after the default
        collection setting.
        """
        configured = self.provider.config.collection_id
        if configured:
            for collection in collections:
                if collection.id == configured:
                    self._remember_target(collection)
                    return collection

            remembered = self._retry(
                lambda: client.get_collection(configured), "Get collection"
            )
            if remembered is not None:
                self._remember_target(remembered)
                return remembered

            logger.warning(
                f"Configured collection {configured} no longer exists, "
                "selecting a new one"
            )
            self._forget_target()

        selected = self.provider.select_default_collection(client, collections)
        if selected is None:
            name = self.settings.default_collection_name
            logger.info(f"No default collection found, creating '{name}'")
            selected = client.create_collection(name)
            collections.append(selected)

        logger.info(f"Syncing with remote collection '{selected.title}'")
        self._remember_target(selected)
        return selected

    def _resolve_named(
        self,
        client: GoogleAPIClient,
        collection_name: str | None,
        create_missing: bool,
    ) -> RemoteCollection:
        """
        Resolve a collection by display name, or the target when name is None.

        Raises:
            SyncError: NOT_FOUND if the name matches nothing and
                create_missing is False
        """
        collections = self._list_collections(client)
        if collection_name is None:
            return self._discover_target(client, collections)

        for collection in collections:
            if names_match(collection.title, collection_name):
                return collection

        if not create_missing:
            raise SyncError(
                SyncErrorKind.NOT_FOUND,
                f"Remote collection '{collection_name}' not found",
            )

        logger.info(f"Creating remote collection '{collection_name}'")
        return client.create_collection(collection_name)

    def _local_for(self, remote: RemoteCollection) -> LocalCollection:
        local = self.repository.find_collection_by_name(remote.title)
        if local is None:
            local = self.repository.create_collection(remote.title)
        return local

    def _fetch(
        self, client: GoogleAPIClient, remote: RemoteCollection
    ) -> list[LocalRecord]:
        """
        Fetch and map every record of a remote collection.

        Records the provider cannot map are skipped with a warning. The
        result holds each linked id at most once.
        """
        remote_records = self._retry(
            lambda: client.list_records(remote.id), f"List records of '{remote.title}'"
        )

        records: list[LocalRecord] = []
        seen: set[str] = set()

        for remote_record in remote_records:
            try:
                record = self.provider.record_from_remote(remote_record, remote)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    f"Skipping unmappable record {remote_record.remote_id}: {e}"
                )
                continue
            if record is None or record.id in seen:
                continue
            seen.add(record.id)
            records.append(record)

        # Stamped after mapping so no record looks modified since this pull
        now = utc_now_iso()
        for record in records:
            record.synced_at = now
        return records

    def _pull_into(
        self,
        client: GoogleAPIClient,
        remote: RemoteCollection,
        local: LocalCollection,
    ) -> int:
        """Pull a remote collection into its local counterpart."""
        pulled = self._fetch(client, remote)
        existing = self.repository.get_records(local.id)
        merged = merge_records(existing, pulled, self.provider.merge_remote)
        self.repository.save_records(local.id, merged)
        logger.debug(f"Pulled {len(pulled)} record(s) into '{local.name}'")
        return len(pulled)

    def _write(
        self,
        client: GoogleAPIClient,
        collection_id: str,
        records: list[LocalRecord],
    ) -> tuple[dict[str, str], list[OperationResult]]:
        """
        Push records to a remote collection.

        Creates are fully drained before updates start.

        Returns:
            Tuple of (id map for created records, results of every operation)
        """
        creates, updates = group_by_operation(
            records, self.provider.tag, self.provider.record_to_payload
        )
        max_concurrency = self.settings.max_concurrency

        create_results = execute_create_batch(
            creates,
            lambda payload: client.create_record(collection_id, payload),
            max_concurrency=max_concurrency,
        )
        id_map = {
            result.item_id: link_id(self.provider.tag, result.remote_id)
            for result in create_results
            if result.success and result.remote_id
        }

        update_results = execute_update_batch(
            updates,
            lambda remote_id, payload: client.update_record(
                collection_id, remote_id, payload
            ),
            max_concurrency=max_concurrency,
        )

        return id_map, create_results + update_results

    def _needs_push(self, record: LocalRecord) -> bool:
        record_id = parse_record_id(record.id, (self.provider.tag,))
        if isinstance(record_id, LinkedId):
            return record.is_modified_since_sync()
        return True

    # =========================================================================
    # Sync steps
    # =========================================================================

    def _auto_create_missing_local(
        self,
        client: GoogleAPIClient,
        collections: list[RemoteCollection],
        warnings: list[str],
    ) -> tuple[int, set[str]]:
        """
        Mirror remote collections that have no local counterpart.

        Each new local collection is pulled immediately. Failures other
        than authentication failures are turned into warnings.

        Returns:
            Tuple of (records pulled, ids of remote collections pulled)
        """
        pulled = 0
        pulled_ids: set[str] = set()

        for remote in collections:
            if not remote.title.strip():
                continue
            if self.repository.find_collection_by_name(remote.title) is not None:
                continue

            local = self.repository.create_collection(remote.title)
            logger.info(f"Mirrored remote collection '{remote.title}' locally")
            try:
                pulled += self._pull_into(client, remote, local)
                pulled_ids.add(remote.id)
            except SyncError as e:
                if is_auth_error(e):
                    raise
                message = f"Could not pull '{remote.title}': {e.message}"
                logger.warning(message)
                warnings.append(message)

        return pulled, pulled_ids

    def _push_collection(
        self,
        client: GoogleAPIClient,
        remote: RemoteCollection,
        local: LocalCollection,
        warnings: list[str],
    ) -> tuple[int, dict[str, str]]:
        """
        Push pending local records and persist the id rewrites.

        Returns:
            Tuple of (records pushed, id map)
        """
        pending = [
            record
            for record in self.repository.get_records(local.id)
            if self._needs_push(record)
        ]
        if not pending:
            return 0, {}

        id_map, results = self._write(client, remote.id, pending)

        synced_ids = set()
        unlinked: dict[str, str] = {}
        for result in results:
            if result.success:
                synced_ids.add(id_map.get(result.item_id, result.item_id))
            elif result.error is None:
                continue
            elif self._remote_gone(result):
                unlinked[result.item_id] = new_local_id()
                warnings.append(
                    f"Remote copy of {result.item_id} was deleted, "
                    "it will be created again"
                )
            else:
                warnings.append(
                    f"Could not push {result.item_id}: {result.error.message}"
                )

        self.repository.replace_record_ids(
            local.id,
            {**id_map, **unlinked},
            synced_ids=synced_ids,
            synced_at=utc_now_iso(),
        )
        return len(synced_ids), id_map

    def _remote_gone(self, result: OperationResult) -> bool:
        """Whether a failed update hit a remote record that no longer exists."""
        if result.error is None or result.error.kind != SyncErrorKind.NOT_FOUND:
            return False
        record_id = parse_record_id(result.item_id, (self.provider.tag,))
        return isinstance(record_id, LinkedId)

    def _run(self) -> SyncResult:
        name = self.provider.display_name
        warnings: list[str] = []

        logger.debug(f"[{name}] ResolveCredential")
        client = self._connect()

        logger.debug(f"[{name}] DiscoverCollections")
        collections = self._list_collections(client)
        target = self._discover_target(client, collections)

        logger.debug(f"[{name}] AutoCreateMissingLocal")
        pulled, pulled_ids = self._auto_create_missing_local(
            client, collections, warnings
        )

        logger.debug(f"[{name}] Pull")
        local = self._local_for(target)
        if target.id not in pulled_ids:
            try:
                pulled += self._pull_into(client, target, local)
            except SyncError as e:
                if e.kind != SyncErrorKind.NOT_FOUND:
                    raise
                logger.warning(
                    f"Remote collection '{target.title}' disappeared, rediscovering"
                )
                self._forget_target()
                target = self._discover_target(client, self._list_collections(client))
                local = self._local_for(target)
                pulled += self._pull_into(client, target, local)

        logger.debug(f"[{name}] Push")
        pushed, id_map = self._push_collection(client, target, local, warnings)

        logger.debug(f"[{name}] Done")
        message = f"{name} sync successful: {pulled} pulled, {pushed} pushed"
        if warnings:
            message += f" ({len(warnings)} warning(s))"
        return SyncResult(
            success=True,
            message=message,
            todos_pushed=pushed,
            todos_pulled=pulled,
            warnings=warnings,
            id_map=id_map,
        )

    # =========================================================================
    # Public operations
    # =========================================================================

    def sync(self) -> SyncResult:
        """
        Run a full sync attempt.

        Never raises: every failure is returned as an unsuccessful result.
        """
        name = self.provider.display_name

        if not self.provider.enabled:
            return SyncResult(
                success=False,
                message=f"{name} sync is disabled",
                error=SyncError(SyncErrorKind.SYNC_FAILED, f"{name} sync is disabled"),
            )

        if not self._lock.acquire(blocking=False):
            logger.warning(f"{name} sync already in progress, ignoring request")
            return SyncResult(
                success=False,
                message=f"{name} sync already in progress",
                error=SyncError(
                    SyncErrorKind.SYNC_FAILED, f"{name} sync already in progress"
                ),
            )

        try:
            logger.info(f"Starting {name} sync")
            result = self._run()
            logger.info(result.message)
            return result
        except Exception as e:
            error = classify(e)
            logger.error(f"{name} sync failed ({error.kind.value}): {error.message}")
            return SyncResult(
                success=False,
                message=f"{name} sync failed: {user_message(error)}",
                error=error,
            )
        finally:
            self._lock.release()

    def push_records(
        self, records: list[LocalRecord], collection_name: str | None = None
    ) -> dict[str, str]:
        """
        Push records to the provider.

        Records created remotely have their id rewritten in place and are
        marked synced. Persisting the rewritten ids is up to the caller.
        Items that fail are logged and left unchanged.

        Args:
            records: Records to push
            collection_name: Remote collection name; the sync target when None.
                A missing named collection is created.

        Returns:
            Mapping of original local id to new linked id

        Raises:
            SyncError: If the token or the remote collection cannot be resolved
        """
        client = self._connect()
        remote = self._resolve_named(client, collection_name, create_missing=True)
        id_map, results = self._write(client, remote.id, records)

        now = utc_now_iso()
        succeeded = {result.item_id for result in results if result.success}
        for record in records:
            if record.id in succeeded:
                record.id = id_map.get(record.id, record.id)
                record.synced_at = now

        failed = len(results) - len(succeeded)
        if failed:
            logger.warning(f"{failed} record(s) could not be pushed to {remote.id}")
        logger.info(f"Pushed {len(succeeded)} record(s) to '{remote.title}'")
        return id_map

    def pull_records(self, collection_name: str | None = None) -> list[LocalRecord]:
        """
        Fetch and map every record of a remote collection.

        Args:
            collection_name: Remote collection name; the sync target when None

        Returns:
            Mapped records, each linked id at most once

        Raises:
            SyncError: If the token, collection or records cannot be fetched
        """
        client = self._connect()
        remote = self._resolve_named(client, collection_name, create_missing=False)
        records = self._fetch(client, remote)
        logger.info(f"Pulled {len(records)} record(s) from '{remote.title}'")
        return records

    def delete_remote(
        self, remote_linked_id: str, collection_name: str | None = None
    ) -> bool:
        """
        Delete a linked record from the provider.

        Returns:
            True if deleted, False if the remote record was already gone

        Raises:
            SyncError: VALIDATION_ERROR if the id is not linked to this
                provider, or the classified failure of the delete
        """
        record_id = parse_record_id(remote_linked_id, (self.provider.tag,))
        if not isinstance(record_id, LinkedId):
            raise SyncError(
                SyncErrorKind.VALIDATION_ERROR,
                f"Record {remote_linked_id} is not linked to {self.provider.tag}",
            )

        client = self._connect()
        remote = self._resolve_named(client, collection_name, create_missing=False)
        return client.delete_record(remote.id, record_id.remote_id)

    def delete_local_record(self, collection_id: str, record_id: str) -> list[str]:
        """
        Delete a record locally, removing its remote counterpart first.

        The local deletion always happens. A remote record that is already
        gone or cannot be deleted produces a warning instead of an error.

        Args:
            collection_id: Local collection holding the record
            record_id: Id of the record to delete

        Returns:
            Warnings raised while deleting
        """
        warnings: list[str] = []

        if isinstance(parse_record_id(record_id, (self.provider.tag,)), LinkedId):
            local = self.repository.get_collection(collection_id)
            collection_name = local.name if local is not None else None
            try:
                if not self.delete_remote(record_id, collection_name):
                    warnings.append(f"Remote copy of {record_id} was already deleted")
            except SyncError as e:
                warnings.append(f"Deleted {record_id} locally only: {e.message}")

        for warning in warnings:
            logger.warning(warning)

        if not self.repository.remove_record(collection_id, record_id):
            logger.debug(f"Record {record_id} was not stored in {collection_id}")

        return warnings
