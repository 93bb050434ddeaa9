"""
Local collections and their records on top of the key-value store.

Layout per namespace (e.g. "todos" or "events"):
    <namespace>:lists          list of {id, name, createdAt}
    <namespace>:list:<id>      list of records in that collection
"""

from __future__ import annotations

import logging

from dashboard_sync.storage.db import LocalStore
from dashboard_sync.sync.records import LocalCollection, LocalRecord, new_local_id
from dashboard_sync.utils.normalization import names_match

logger = logging.getLogger(__name__)


class CollectionRepository:
    """
    Reads and writes local collections for one namespace.

    Usage:
        repo = CollectionRepository(store, namespace="todos")
        inbox = repo.create_collection("Inbox")
        repo.save_records(inbox.id, [record])
    """

    def __init__(self, store: LocalStore, namespace: str = "todos"):
        self.store = store
        self.namespace = namespace

    @property
    def lists_key(self) -> str:
        return f"{self.namespace}:lists"

    def records_key(self, collection_id: str) -> str:
        return f"{self.namespace}:list:{collection_id}"

    # =========================================================================
    # Collections
    # =========================================================================

    def get_collections(self) -> list[LocalCollection]:
        """Get all local collections, skipping malformed entries."""
        collections = []
        for item in self.store.get(self.lists_key, []) or []:
            try:
                collections.append(LocalCollection.from_dict(item))
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed collection {item!r}: {e}")
        return collections

    def save_collections(self, collections: list[LocalCollection]) -> None:
        self.store.set(self.lists_key, [c.to_dict() for c in collections])

    def get_collection(self, collection_id: str) -> LocalCollection | None:
        for collection in self.get_collections():
            if collection.id == collection_id:
                return collection
        return None

    def find_collection_by_name(self, name: str) -> LocalCollection | None:
        """Find a collection whose name matches after normalization."""
        for collection in self.get_collections():
            if names_match(collection.name, name):
                return collection
        return None

    def create_collection(self, name: str) -> LocalCollection:
        """
        Create a local collection with the given display name.

        Returns the existing collection if one with a matching name is
        already present.
        """
        existing = self.find_collection_by_name(name)
        if existing is not None:
            return existing

        collection = LocalCollection(id=new_local_id(), name=name)
        collections = self.get_collections()
        collections.append(collection)
        self.save_collections(collections)
        logger.info(f"Created local collection '{name}' ({collection.id})")
        return collection

    def delete_collection(self, collection_id: str) -> bool:
        collections = self.get_collections()
        remaining = [c for c in collections if c.id != collection_id]
        if len(remaining) == len(collections):
            return False
        self.save_collections(remaining)
        self.store.delete(self.records_key(collection_id))
        return True

    # =========================================================================
    # Records
    # =========================================================================

    def get_records(self, collection_id: str) -> list[LocalRecord]:
        """Get all records of a collection, skipping malformed entries."""
        records = []
        for item in self.store.get(self.records_key(collection_id), []) or []:
            try:
                records.append(LocalRecord.from_dict(item))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed record {item!r}: {e}")
        return records

    def save_records(self, collection_id: str, records: list[LocalRecord]) -> None:
        self.store.set(
            self.records_key(collection_id), [record.to_dict() for record in records]
        )

    def replace_record_ids(
        self,
        collection_id: str,
        id_map: dict[str, str],
        synced_ids: set[str] | None = None,
        synced_at: str | None = None,
    ) -> int:
        """
        Rewrite record ids after they were created remotely.

        Args:
            collection_id: Collection holding the records
            id_map: Mapping of old local id to new linked id
            synced_ids: Ids (after rewriting) whose synced_at is set
            synced_at: Timestamp stored for synced_ids

        Returns:
            Number of records whose id was rewritten
        """
        synced_ids = synced_ids or set()
        if not id_map and not synced_ids:
            return 0

        records = self.get_records(collection_id)
        replaced = 0
        for record in records:
            new_id = id_map.get(record.id)
            if new_id:
                record.id = new_id
                replaced += 1
            if synced_at and record.id in synced_ids:
                record.synced_at = synced_at

        self.save_records(collection_id, records)
        return replaced

    def remove_record(self, collection_id: str, record_id: str) -> bool:
        """
        Remove a record from a collection.

        Returns:
            True if the record existed, False otherwise
        """
        records = self.get_records(collection_id)
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            return False
        self.save_records(collection_id, remaining)
        return True
