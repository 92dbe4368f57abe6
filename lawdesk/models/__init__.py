"""
Database models - import all models here so Alembic can discover them.
"""
from lawdesk.models.team_member import TeamMember
from lawdesk.models.client import Client
from lawdesk.models.notification import Notification
from lawdesk.models.availability import AvailabilityRule, AvailabilityException, FirmHoliday
from lawdesk.models.appointment import Appointment
from lawdesk.models.calendar_sync import GoogleCalendarSettings, CalendarSyncQueueItem
from lawdesk.models.fetch_queue import CaseFetchQueueItem
from lawdesk.models.case import Case, CaseHearing, AutoRefreshLog

__all__ = [
    "TeamMember",
    "Client",
    "Notification",
    "AvailabilityRule",
    "AvailabilityException",
    "FirmHoliday",
    "Appointment",
    "GoogleCalendarSettings",
    "CalendarSyncQueueItem",
    "CaseFetchQueueItem",
    "Case",
    "CaseHearing",
    "AutoRefreshLog",
]
