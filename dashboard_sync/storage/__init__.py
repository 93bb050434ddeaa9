"""
dashboard_sync.storage - Local persistence

A SQLite-backed key-value store and the collection repository built on it.
"""

from dashboard_sync.storage.collections import CollectionRepository
from dashboard_sync.storage.db import LocalStore, StorageError

__all__ = [
    "CollectionRepository",
    "LocalStore",
    "StorageError",
]
