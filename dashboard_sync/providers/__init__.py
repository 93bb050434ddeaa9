"""
dashboard_sync.providers - Sync providers

Importing this package registers every built-in provider.
"""

from dashboard_sync.providers.base import (
    PROVIDER_TYPES,
    SyncProvider,
    create_provider,
    register_provider,
)
from dashboard_sync.providers.google_calendar import GoogleCalendarProvider
from dashboard_sync.providers.google_tasks import GoogleTasksProvider

__all__ = [
    "PROVIDER_TYPES",
    "SyncProvider",
    "create_provider",
    "register_provider",
    "GoogleTasksProvider",
    "GoogleCalendarProvider",
]
