"""
Shared plumbing for Google REST API clients.

Clients are built from a bearer token obtained from the credential
gateway. Each request runs on a per-thread authorized transport because
httplib2 connections are not thread-safe and the batch executor issues
writes from worker threads. Every failure leaves this module as a
classified SyncError.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import google_auth_httplib2
import httplib2
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from dashboard_sync.api.schemas import (
    CollectionResource,
    GoogleResource,
    PageResponse,
    validate_response,
)
from dashboard_sync.errors import SyncError, SyncErrorKind, classify
from dashboard_sync.sync.records import RemoteCollection, RemoteRecord

# Maximum number of items per page when listing
DEFAULT_PAGE_SIZE = 100

# Network timeout in seconds for each request
DEFAULT_TIMEOUT = 30

logger = logging.getLogger(__name__)


class GoogleAPIClient(ABC):
    """
    Base class for Google collection clients.

    Subclasses set API_NAME, API_VERSION and RECORD_SCHEMA, and implement
    the abstract collection and record verbs on top of _execute and
    _paginate.
    Responses are validated before they are converted; a malformed one
    raises an INVALID_DATA SyncError.

    Attributes:
        credentials: Bearer-token credentials
        page_size: Items requested per page
        timeout: Per-request network timeout in seconds
    """

    API_NAME = ""
    API_VERSION = ""
    # Schema every record resource returned by the API must satisfy
    RECORD_SCHEMA: type[GoogleResource] = GoogleResource

    def __init__(
        self,
        token: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.credentials = Credentials(token=token)
        self.page_size = page_size
        self.timeout = timeout
        self._service = None
        self._local = threading.local()

    @property
    def service(self) -> Any:
        """
        Get or create the Google API service object.

        Raises:
            SyncError: If the service cannot be created
        """
        if self._service is None:
            try:
                self._service = build(
                    self.API_NAME,
                    self.API_VERSION,
                    credentials=self.credentials,
                    cache_discovery=False,
                )
                logger.debug(f"Created {self.API_NAME} {self.API_VERSION} service")
            except Exception as e:
                logger.error(f"Failed to create {self.API_NAME} service: {e}")
                raise classify(e) from e
        return self._service

    def _http(self) -> google_auth_httplib2.AuthorizedHttp:
        """Authorized transport owned by the calling thread."""
        http = getattr(self._local, "http", None)
        if http is None:
            http = google_auth_httplib2.AuthorizedHttp(
                self.credentials, http=httplib2.Http(timeout=self.timeout)
            )
            self._local.http = http
        return http

    def _execute(self, request: Any, operation_name: str) -> Any:
        """
        Execute a prepared API request.

        Raises:
            SyncError: Classified failure of the request
        """
        try:
            return request.execute(http=self._http())
        except Exception as e:
            error = classify(e)
            logger.debug(
                f"{operation_name} failed ({error.kind.value}): {error.message}"
            )
            raise error from e

    def _paginate(
        self,
        make_request: Callable[[str | None], Any],
        operation_name: str,
    ) -> list[dict[str, Any]]:
        """
        Fetch every page of a list request.

        Args:
            make_request: Builds the request for a given page token
            operation_name: Name for logging purposes

        Returns:
            Items from all pages, in order
        """
        items: list[dict[str, Any]] = []
        page_token: str | None = None
        pages = 0

        while True:
            response = self._execute(make_request(page_token), operation_name)
            pages += 1
            page = validate_response(
                PageResponse, response, f"response to {operation_name}"
            )
            items.extend(page.get("items", []))

            page_token = page.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"{operation_name}: {len(items)} item(s) in {pages} page(s)")
        return items

    @staticmethod
    def _is_absent(error: SyncError) -> bool:
        """Check whether an error means the remote resource no longer exists."""
        if error.kind == SyncErrorKind.NOT_FOUND:
            return True
        resp = getattr(error.cause, "resp", None)
        return getattr(resp, "status", None) == 410

    def _collection(self, response: Any) -> RemoteCollection:
        """Validate a collection resource and convert it."""
        item = validate_response(CollectionResource, response, "collection")
        return RemoteCollection.from_api(item)

    def _record(self, response: Any) -> RemoteRecord:
        """Validate a record resource against RECORD_SCHEMA and convert it."""
        item = validate_response(self.RECORD_SCHEMA, response, "record")
        return RemoteRecord.from_api(item)

    # =========================================================================
    # Collection client interface
    # =========================================================================

    @abstractmethod
    def list_collections(self) -> list[RemoteCollection]:
        """List every remote collection of the account."""

    @abstractmethod
    def list_records(self, collection_id: str) -> list[RemoteRecord]:
        """List the live records of a remote collection."""

    @abstractmethod
    def create_collection(self, title: str) -> RemoteCollection:
        """Create a remote collection."""

    @abstractmethod
    def create_record(
        self, collection_id: str, payload: dict[str, Any]
    ) -> RemoteRecord:
        """Create a remote record and return it with its new id."""

    @abstractmethod
    def update_record(
        self, collection_id: str, remote_id: str, payload: dict[str, Any]
    ) -> RemoteRecord:
        """Patch the given fields of a remote record."""

    @abstractmethod
    def _delete_request(self, collection_id: str, remote_id: str) -> Any:
        """Build the delete request of a record."""

    @abstractmethod
    def _get_collection_request(self, collection_id: str) -> Any:
        """Build the get request of a collection."""

    def delete_record(self, collection_id: str, remote_id: str) -> bool:
        """
        Delete a remote record.

        A record that is already gone counts as deleted.

        Returns:
            True if the record was deleted, False if it was already absent

        Raises:
            SyncError: For any other failure
        """
        try:
            self._execute(
                self._delete_request(collection_id, remote_id), "Delete record"
            )
        except SyncError as e:
            if self._is_absent(e):
                logger.warning(
                    f"Remote record {remote_id} not found in {collection_id}, "
                    "treating as already deleted"
                )
                return False
            raise

        logger.debug(f"Deleted remote record {remote_id} from {collection_id}")
        return True

    def get_collection(self, collection_id: str) -> RemoteCollection | None:
        """
        Fetch one remote collection by id.

        Also resolves aliases such as "@default" or "primary" that list
        calls may not return.

        Returns:
            The collection, or None if it no longer exists

        Raises:
            SyncError: For failures other than the collection being absent
        """
        try:
            response = self._execute(
                self._get_collection_request(collection_id), "Get collection"
            )
        except SyncError as e:
            if self._is_absent(e):
                return None
            raise
        return self._collection(response)
