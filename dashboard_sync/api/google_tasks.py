"""
Google Tasks API client.

Task lists are the remote collections and tasks are the remote records.
Deleted and hidden tasks are never returned to the engine.
"""

import logging
from typing import Any

from dashboard_sync.api.base import DEFAULT_PAGE_SIZE, DEFAULT_TIMEOUT, GoogleAPIClient
from dashboard_sync.api.schemas import TaskResource
from dashboard_sync.sync.records import RemoteCollection, RemoteRecord

# The Tasks API caps tasks.list at 100 results per page
MAX_TASKS_PAGE_SIZE = 100

# Built-in list every account has, even when it is absent from tasklists.list
DEFAULT_TASK_LIST = "@default"

logger = logging.getLogger(__name__)


class TasksAPI(GoogleAPIClient):
    """
    Google Tasks v1 client.

    Usage:
        api = TasksAPI(token)

        lists = api.list_collections()
        tasks = api.list_records(lists[0].id)
        created = api.create_record(lists[0].id, {"title": "Buy milk"})
        api.delete_record(lists[0].id, created.remote_id)
    """

    API_NAME = "tasks"
    API_VERSION = "v1"
    RECORD_SCHEMA = TaskResource

    def __init__(
        self,
        token: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        super().__init__(
            token, page_size=min(page_size, MAX_TASKS_PAGE_SIZE), timeout=timeout
        )

    def list_collections(self) -> list[RemoteCollection]:
        """List all task lists of the account, across every page."""
        items = self._paginate(
            lambda page_token: self.service.tasklists().list(
                maxResults=self.page_size, pageToken=page_token
            ),
            "List task lists",
        )
        return [self._collection(item) for item in items if item.get("id")]

    def list_records(self, collection_id: str) -> list[RemoteRecord]:
        """
        List the visible tasks of a task list, across every page.

        Completed tasks are included; deleted and hidden tasks are skipped.
        """
        items = self._paginate(
            lambda page_token: self.service.tasks().list(
                tasklist=collection_id,
                showCompleted=True,
                showHidden=False,
                maxResults=self.page_size,
                pageToken=page_token,
            ),
            f"List tasks of {collection_id}",
        )

        records = []
        for item in items:
            if item.get("deleted") or item.get("hidden"):
                continue
            if not item.get("id"):
                logger.warning(f"Skipping task without id: {item!r}")
                continue
            records.append(self._record(item))

        return records

    def create_collection(self, title: str) -> RemoteCollection:
        response = self._execute(
            self.service.tasklists().insert(body={"title": title}),
            f"Create task list '{title}'",
        )
        logger.info(f"Created task list '{title}' ({response.get('id')})")
        return self._collection(response)

    def create_record(
        self, collection_id: str, payload: dict[str, Any]
    ) -> RemoteRecord:
        response = self._execute(
            self.service.tasks().insert(tasklist=collection_id, body=payload),
            "Create task",
        )
        return self._record(response)

    def update_record(
        self, collection_id: str, remote_id: str, payload: dict[str, Any]
    ) -> RemoteRecord:
        response = self._execute(
            self.service.tasks().patch(
                tasklist=collection_id, task=remote_id, body=payload
            ),
            f"Update task {remote_id}",
        )
        return self._record(response)

    def _delete_request(self, collection_id: str, remote_id: str) -> Any:
        return self.service.tasks().delete(tasklist=collection_id, task=remote_id)

    def _get_collection_request(self, collection_id: str) -> Any:
        return self.service.tasklists().get(tasklist=collection_id)
