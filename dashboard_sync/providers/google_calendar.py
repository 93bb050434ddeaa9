"""
Google Calendar provider.

Local events map to calendar events. All-day events use date-only start
and end values with an exclusive end date; timed events use local wall
clock times with the local UTC offset.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any

from dashboard_sync.api.base import GoogleAPIClient
from dashboard_sync.api.google_calendar import PRIMARY_CALENDAR, CalendarAPI
from dashboard_sync.providers.base import UNTITLED, SyncProvider, register_provider
from dashboard_sync.sync.records import (
    RECORD_KIND_EVENT,
    LocalRecord,
    RemoteCollection,
    RemoteRecord,
    link_id,
    utc_now_iso,
)

# Google Calendar event colors (colorId -> hex)
COLOR_MAP = {
    "1": "#a4bdfc",  # Lavender
    "2": "#7ae7bf",  # Sage
    "3": "#dbadff",  # Grape
    "4": "#ff887c",  # Flamingo
    "5": "#fbd75b",  # Banana
    "6": "#ffb878",  # Tangerine
    "7": "#46d6db",  # Peacock
    "8": "#e1e1e1",  # Graphite
    "9": "#5484ed",  # Blueberry
    "10": "#51b749",  # Basil
    "11": "#dc2127",  # Tomato
}
COLOR_IDS = {color: color_id for color_id, color in COLOR_MAP.items()}

CANCELED_PREFIX = "CANCELED:"

# Timed events without an end time last this long
DEFAULT_EVENT_DURATION = timedelta(hours=1)

logger = logging.getLogger(__name__)


def _shift_day(value: str, days: int) -> str:
    return (date.fromisoformat(value) + timedelta(days=days)).isoformat()


def _local_datetime(day: str, clock: str) -> datetime:
    """Interpret a local date and HH:MM time in the machine's timezone."""
    return datetime.fromisoformat(f"{day}T{clock}").astimezone()


def _remote_datetime(value: str) -> datetime:
    """Parse an RFC 3339 event time into the machine's local timezone."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value).astimezone()


@register_provider("google-calendar")
class GoogleCalendarProvider(SyncProvider):
    """Syncs local calendar events with Google Calendar calendars."""

    display_name = "Google Calendar"
    tag = "google"
    namespace = "events"
    oauth_provider = "google"

    def build_client(self, token: str) -> CalendarAPI:
        return CalendarAPI(
            token,
            page_size=self.settings.api_page_size,
            timeout=self.settings.api_timeout,
            window_days=self.settings.calendar_window_days,
        )

    def record_to_payload(
        self, record: LocalRecord, for_create: bool
    ) -> dict[str, Any]:
        """
        Build an event body.

        Raises:
            ValueError: If the event date or times are malformed
        """
        payload: dict[str, Any] = {"description": record.notes or ""}

        title = (record.title or "").strip()
        if title:
            payload["summary"] = title

        if record.date:
            if record.time:
                start = _local_datetime(record.date, record.time)
                if record.end_time:
                    end = _local_datetime(
                        record.end_date or record.date, record.end_time
                    )
                elif record.end_date:
                    end = _local_datetime(record.end_date, "23:59:59")
                else:
                    end = start + DEFAULT_EVENT_DURATION
                payload["start"] = {"dateTime": start.isoformat()}
                payload["end"] = {"dateTime": end.isoformat()}
            else:
                # All-day end dates are exclusive
                payload["start"] = {"date": record.date}
                payload["end"] = {"date": _shift_day(record.end_date or record.date, 1)}

        if record.color in COLOR_IDS:
            payload["colorId"] = COLOR_IDS[record.color]

        return payload

    def record_from_remote(
        self, remote: RemoteRecord, collection: RemoteCollection
    ) -> LocalRecord | None:
        fields = remote.fields
        summary = fields.get("summary") or ""
        if summary.startswith(CANCELED_PREFIX):
            return None

        start = fields.get("start") or {}
        end = fields.get("end") or {}
        start_value = start.get("date") or start.get("dateTime")
        if not start_value:
            return None

        event_date = start_value.split("T")[0]
        event_time = None
        end_time = None
        end_date = None

        if start.get("dateTime"):
            start_at = _remote_datetime(start["dateTime"])
            event_date = start_at.date().isoformat()
            event_time = start_at.strftime("%H:%M")
        if end.get("dateTime"):
            end_at = _remote_datetime(end["dateTime"])
            end_time = end_at.strftime("%H:%M")
            end_date = end_at.date().isoformat()
        elif end.get("date"):
            end_date = _shift_day(end["date"], -1)

        if end_date == event_date:
            end_date = None

        now = utc_now_iso()
        return LocalRecord(
            id=link_id(self.tag, remote.remote_id),
            title=summary or UNTITLED,
            kind=RECORD_KIND_EVENT,
            date=event_date,
            end_date=end_date,
            time=event_time,
            end_time=end_time,
            notes=fields.get("description") or "",
            color=COLOR_MAP.get(str(fields.get("colorId", "")), ""),
            source_collection=collection.title,
            created_at=fields.get("created") or now,
            updated_at=remote.updated,
        )

    def select_default_collection(
        self, client: GoogleAPIClient, collections: list[RemoteCollection]
    ) -> RemoteCollection | None:
        """Sync with the primary calendar."""
        for collection in collections:
            if collection.primary:
                return collection
        return client.get_collection(PRIMARY_CALENDAR)
