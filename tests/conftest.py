"""Shared fixtures: an in-memory store and a fake remote collection client."""

import itertools
from unittest.mock import MagicMock

import pytest

from dashboard_sync.config.loader import SyncSettings
from dashboard_sync.config.sync_config import SyncConfig
from dashboard_sync.errors import SyncError, SyncErrorKind
from dashboard_sync.providers.base import create_provider
from dashboard_sync.storage.db import LocalStore
from dashboard_sync.sync.records import RemoteCollection, RemoteRecord


class FakeClient:
    """
    In-memory stand-in for a Google collection client.

    Records are stored as raw API items per collection. Titles listed in
    fail_titles make create or update calls for that title fail.
    """

    def __init__(self, collections=None, records=None, ids=None):
        self.collections = list(collections or [])
        self.records = {key: list(items) for key, items in (records or {}).items()}
        self.fail_titles = {}
        self.created = []
        self.updated = []
        self.deleted = []
        self._ids = iter(ids) if ids else (f"r{n}" for n in itertools.count(1))

    def _find(self, collection_id):
        for collection in self.collections:
            if collection.id == collection_id:
                return collection
        return None

    def list_collections(self):
        return list(self.collections)

    def get_collection(self, collection_id):
        return self._find(collection_id)

    def create_collection(self, title):
        collection_id = f"list-{len(self.collections) + 1}"
        collection = RemoteCollection(id=collection_id, title=title)
        self.collections.append(collection)
        return collection

    def list_records(self, collection_id):
        if self._find(collection_id) is None:
            raise SyncError(SyncErrorKind.NOT_FOUND, "Not Found")
        items = self.records.get(collection_id, [])
        return [RemoteRecord.from_api(item) for item in items]

    def _check(self, payload):
        title = payload.get("title") or payload.get("summary")
        if title in self.fail_titles:
            raise self.fail_titles[title]

    def create_record(self, collection_id, payload):
        self._check(payload)
        item = dict(payload, id=next(self._ids))
        self.records.setdefault(collection_id, []).append(item)
        self.created.append((collection_id, payload))
        return RemoteRecord.from_api(item)

    def update_record(self, collection_id, remote_id, payload):
        self._check(payload)
        self.updated.append((collection_id, remote_id, payload))
        for item in self.records.get(collection_id, []):
            if item["id"] == remote_id:
                item.update(payload)
                return RemoteRecord.from_api(item)
        raise SyncError(SyncErrorKind.NOT_FOUND, "Not Found")

    def delete_record(self, collection_id, remote_id):
        self.deleted.append((collection_id, remote_id))
        items = self.records.get(collection_id, [])
        remaining = [item for item in items if item["id"] != remote_id]
        self.records[collection_id] = remaining
        return len(remaining) != len(items)


@pytest.fixture
def store():
    store = LocalStore(":memory:")
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def gateway():
    gateway = MagicMock()
    gateway.is_connected.return_value = True
    gateway.get_valid_access_token.return_value = "access-token"
    return gateway


@pytest.fixture
def settings():
    return SyncSettings(retry_base_delay=0.01)


@pytest.fixture
def make_provider(store, gateway, settings):
    """Build a registered provider wired to a fake client."""

    def factory(name, client, **config_fields):
        config = SyncConfig(
            provider=name, credentials={"oauthProvider": "google"}, **config_fields
        )
        provider = create_provider(config, gateway, store, settings=settings)
        provider.build_client = MagicMock(return_value=client)
        return provider

    return factory
