"""
Calendar sync producer - the ledger publishes appointment changes here.

Items are written in the caller's session so the queue row commits (or rolls
back) together with the appointment change that produced it.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawdesk.models.appointment import Appointment
from lawdesk.models.calendar_sync import CalendarSyncQueueItem, GoogleCalendarSettings
from lawdesk.utils.timeutils import parse_date, parse_clock_time

logger = logging.getLogger(__name__)

OPERATIONS = ("INSERT", "UPDATE", "DELETE")


def appointment_snapshot(appointment: Appointment) -> dict:
    """JSON-safe copy of the fields the sync worker needs."""
    return {
        "id": str(appointment.id),
        "lawyer_id": str(appointment.lawyer_id),
        "firm_id": str(appointment.firm_id) if appointment.firm_id else None,
        "title": appointment.title,
        "appointment_date": appointment.appointment_date.isoformat(),
        "appointment_time": appointment.appointment_time.strftime("%H:%M:%S"),
        "duration_minutes": appointment.duration_minutes,
        "status": appointment.status,
        "notes": appointment.notes,
        "location": appointment.location,
        "client_name": appointment.client_name,
        "external_event_id": appointment.external_event_id,
    }


async def is_sync_enabled(db: AsyncSession, lawyer_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(GoogleCalendarSettings.sync_enabled).where(
            GoogleCalendarSettings.user_id == lawyer_id
        )
    )
    return bool(result.scalar_one_or_none())


async def enqueue_sync(
    db: AsyncSession,
    appointment: Appointment,
    operation: str,
) -> Optional[CalendarSyncQueueItem]:
    """
    Queue an appointment change for the external calendar.
    Returns None when the lawyer has not enabled sync.
    """
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown sync operation: {operation}")

    if not await is_sync_enabled(db, appointment.lawyer_id):
        return None

    item = CalendarSyncQueueItem(
        owner_id=appointment.lawyer_id,
        appointment_id=appointment.id,
        operation=operation,
        appointment_data=appointment_snapshot(appointment),
        processed=False,
    )
    db.add(item)
    await db.flush()

    logger.debug(
        "Calendar sync queued: %s",
        operation,
        extra={"appointment_id": str(appointment.id), "lawyer_id": str(appointment.lawyer_id)},
    )
    return item


def event_window(snapshot: dict) -> tuple[datetime, datetime]:
    """Naive local (start, end) of the appointment described by a snapshot."""
    day = parse_date(snapshot.get("appointment_date"))
    clock = parse_clock_time(snapshot.get("appointment_time"))
    if day is None or clock is None:
        raise ValueError("Appointment snapshot has no valid date/time")
    start = datetime.combine(day, clock)
    end = start + timedelta(minutes=int(snapshot.get("duration_minutes") or 30))
    return start, end


def build_event_payload(snapshot: dict, tz_name: str) -> dict:
    """Google Calendar event body for an appointment snapshot."""
    start, end = event_window(snapshot)
    description = (
        f"{snapshot.get('notes') or ''}\n\n"
        f"Client: {snapshot.get('client_name') or 'N/A'}\n"
        f"Status: {snapshot.get('status')}"
    )
    payload = {
        "summary": snapshot.get("title") or "Appointment",
        "description": description,
        "start": {"dateTime": start.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": tz_name},
        "end": {"dateTime": end.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": tz_name},
    }
    if snapshot.get("location"):
        payload["location"] = snapshot["location"]
    return payload
