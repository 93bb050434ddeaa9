"""
dashboard_sync - Remote synchronization for dashboard collections

Keeps local todo lists and calendar events in sync with Google Tasks and
Google Calendar.
"""

__version__ = "0.1.0"
