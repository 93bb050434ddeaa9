"""
Google Calendar API client.

Calendars are the remote collections and events are the remote records.
Recurring events are expanded into single instances and only events
inside a window around today are listed.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from dashboard_sync.api.base import DEFAULT_PAGE_SIZE, DEFAULT_TIMEOUT, GoogleAPIClient
from dashboard_sync.api.schemas import EventResource
from dashboard_sync.sync.records import RemoteCollection, RemoteRecord

# Days before and after today included when listing events
DEFAULT_WINDOW_DAYS = 90

PRIMARY_CALENDAR = "primary"

logger = logging.getLogger(__name__)


def _rfc3339(moment: datetime) -> str:
    return moment.isoformat(timespec="seconds").replace("+00:00", "Z")


class CalendarAPI(GoogleAPIClient):
    """
    Google Calendar v3 client.

    Usage:
        api = CalendarAPI(token, window_days=30)

        calendars = api.list_collections()
        events = api.list_records("primary")
    """

    API_NAME = "calendar"
    API_VERSION = "v3"
    RECORD_SCHEMA = EventResource

    def __init__(
        self,
        token: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: int = DEFAULT_TIMEOUT,
        window_days: int = DEFAULT_WINDOW_DAYS,
    ):
        super().__init__(token, page_size=page_size, timeout=timeout)
        self.window_days = window_days

    def time_window(self, now: datetime | None = None) -> tuple[str, str]:
        """Get the (timeMin, timeMax) bounds used when listing events."""
        now = now or datetime.now(timezone.utc)
        delta = timedelta(days=self.window_days)
        return _rfc3339(now - delta), _rfc3339(now + delta)

    def list_collections(self) -> list[RemoteCollection]:
        """List every calendar in the user's calendar list."""
        items = self._paginate(
            lambda page_token: self.service.calendarList().list(
                maxResults=self.page_size, pageToken=page_token
            ),
            "List calendars",
        )
        return [self._collection(item) for item in items if item.get("id")]

    def list_records(self, collection_id: str) -> list[RemoteRecord]:
        """List non-cancelled events of a calendar within the time window."""
        time_min, time_max = self.time_window()
        items = self._paginate(
            lambda page_token: self.service.events().list(
                calendarId=collection_id,
                timeMin=time_min,
                timeMax=time_max,
                singleEvents=True,
                orderBy="startTime",
                maxResults=self.page_size,
                pageToken=page_token,
            ),
            f"List events of {collection_id}",
        )

        records = []
        for item in items:
            if item.get("status") == "cancelled" or not item.get("id"):
                continue
            records.append(self._record(item))
        return records

    def create_collection(self, title: str) -> RemoteCollection:
        response = self._execute(
            self.service.calendars().insert(body={"summary": title}),
            f"Create calendar '{title}'",
        )
        logger.info(f"Created calendar '{title}' ({response.get('id')})")
        return self._collection(response)

    def create_record(
        self, collection_id: str, payload: dict[str, Any]
    ) -> RemoteRecord:
        response = self._execute(
            self.service.events().insert(calendarId=collection_id, body=payload),
            "Create event",
        )
        return self._record(response)

    def update_record(
        self, collection_id: str, remote_id: str, payload: dict[str, Any]
    ) -> RemoteRecord:
        response = self._execute(
            self.service.events().patch(
                calendarId=collection_id, eventId=remote_id, body=payload
            ),
            f"Update event {remote_id}",
        )
        return self._record(response)

    def _delete_request(self, collection_id: str, remote_id: str) -> Any:
        return self.service.events().delete(calendarId=collection_id, eventId=remote_id)

    def _get_collection_request(self, collection_id: str) -> Any:
        return self.service.calendarList().get(calendarId=collection_id)
