"""
dashboard_sync.api - Remote collection clients

Google Tasks and Google Calendar clients sharing pagination, transport and
error classification.
"""

from dashboard_sync.api.base import GoogleAPIClient
from dashboard_sync.api.google_calendar import CalendarAPI
from dashboard_sync.api.google_tasks import TasksAPI

__all__ = ["GoogleAPIClient", "TasksAPI", "CalendarAPI"]
