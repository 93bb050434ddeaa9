"""
Google Tasks provider.

Local todos map to tasks: title, completion status, deadline (task due
date) and notes. Priority stays local because Google Tasks has no
equivalent field.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any

from dashboard_sync.api.base import GoogleAPIClient
from dashboard_sync.api.google_tasks import DEFAULT_TASK_LIST, TasksAPI
from dashboard_sync.providers.base import UNTITLED, SyncProvider, register_provider
from dashboard_sync.sync.records import (
    RECORD_KIND_TASK,
    LocalRecord,
    RemoteCollection,
    RemoteRecord,
    link_id,
    parse_timestamp,
    utc_now_iso,
)
from dashboard_sync.utils.normalization import names_match

# Built-in list names used when the configured default list is absent
FALLBACK_LIST_NAMES = ("My Tasks", "Mes Tâches", "Ma liste")

STATUS_COMPLETED = "completed"
STATUS_NEEDS_ACTION = "needsAction"

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

logger = logging.getLogger(__name__)


def deadline_to_due(deadline: str | None) -> str | None:
    """
    Convert a local deadline into a Tasks API due timestamp.

    A date-only deadline becomes midnight UTC of that day, which is how
    the Tasks API stores due dates.

    Returns:
        RFC 3339 timestamp, or None if the deadline is empty or invalid
    """
    if not deadline:
        return None

    if _DATE_ONLY.match(deadline):
        try:
            date.fromisoformat(deadline)
        except ValueError:
            logger.warning(f"Invalid deadline date: {deadline}")
            return None
        return f"{deadline}T00:00:00.000Z"

    parsed = parse_timestamp(deadline)
    if parsed is None:
        logger.warning(f"Invalid deadline date: {deadline}")
        return None
    return f"{parsed.date().isoformat()}T00:00:00.000Z"


def due_to_deadline(due: str | None) -> str | None:
    """Convert a Tasks API due value into a YYYY-MM-DD deadline."""
    if not due:
        return None
    if "T" not in due:
        return due
    parsed = parse_timestamp(due)
    if parsed is None:
        logger.warning(f"Could not parse due date: {due}")
        return None
    return parsed.date().isoformat()


@register_provider("google-tasks")
class GoogleTasksProvider(SyncProvider):
    """Syncs local todo lists with Google Tasks task lists."""

    display_name = "Google Tasks"
    tag = "google"
    namespace = "todos"
    oauth_provider = "google"
    local_only_fields = ("created_at", "priority")

    def build_client(self, token: str) -> TasksAPI:
        return TasksAPI(
            token,
            page_size=self.settings.api_page_size,
            timeout=self.settings.api_timeout,
        )

    def record_to_payload(
        self, record: LocalRecord, for_create: bool
    ) -> dict[str, Any]:
        """
        Build a task body.

        Create payloads leave status out unless the todo is completed, so
        the API applies its own default. Update payloads always carry the
        status so a reopened todo is reopened remotely.
        """
        payload: dict[str, Any] = {}

        title = (record.title or "").strip()
        if title:
            payload["title"] = title

        if record.completed:
            payload["status"] = STATUS_COMPLETED
            payload["completed"] = utc_now_iso()
        elif not for_create:
            payload["status"] = STATUS_NEEDS_ACTION
            payload["completed"] = None

        due = deadline_to_due(record.deadline)
        if due:
            payload["due"] = due

        if record.notes:
            payload["notes"] = record.notes

        return payload

    def record_from_remote(
        self, remote: RemoteRecord, collection: RemoteCollection
    ) -> LocalRecord | None:
        fields = remote.fields
        if fields.get("deleted") or fields.get("hidden"):
            return None

        # updated_at stays unset without a remote time so it never outranks
        # a local edit
        return LocalRecord(
            id=link_id(self.tag, remote.remote_id),
            title=fields.get("title") or UNTITLED,
            kind=RECORD_KIND_TASK,
            completed=fields.get("status") == STATUS_COMPLETED,
            deadline=due_to_deadline(fields.get("due")),
            notes=fields.get("notes") or "",
            source_collection=collection.title,
            created_at=remote.updated or utc_now_iso(),
            updated_at=remote.updated,
        )

    def select_default_collection(
        self, client: GoogleAPIClient, collections: list[RemoteCollection]
    ) -> RemoteCollection | None:
        """
        Pick the task list to sync with.

        Order: the list named after the default collection setting, then
        one of the built-in list names, then the account's @default list.
        """
        for collection in collections:
            if names_match(collection.title, self.settings.default_collection_name):
                return collection

        for name in FALLBACK_LIST_NAMES:
            for collection in collections:
                if names_match(collection.title, name):
                    return collection

        default = client.get_collection(DEFAULT_TASK_LIST)
        if default is not None:
            logger.info(f"Using the account's default task list '{default.title}'")
        return default
