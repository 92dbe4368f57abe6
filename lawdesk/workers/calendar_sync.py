"""
Calendar sync worker - drains the appointment outbox into Google Calendar.

Per run:
- Up to N unprocessed items, oldest first, grouped by lawyer so credentials
  are loaded (and refreshed) once per lawyer
- No usable credentials → every item for that lawyer is marked processed with
  the configuration error (terminal, never retried)
- INSERT creates; UPDATE/DELETE use the stored event id, falling back to a
  title + same-day search when none is known
- Each item is marked processed exactly once, success or failure
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawdesk.config import get_settings
from lawdesk.database import async_session_factory
from lawdesk.integrations.google_calendar import (
    CalendarAuthError,
    GoogleCalendarClient,
    refresh_access_token,
)
from lawdesk.models.appointment import Appointment
from lawdesk.models.calendar_sync import CalendarSyncQueueItem, GoogleCalendarSettings
from lawdesk.services.calendar_sync import build_event_payload, event_window
from lawdesk.utils.locks import LockTimeoutError, worker_lock
from lawdesk.utils.logging import generate_correlation_id, set_correlation_id
from lawdesk.utils.redis_client import write_heartbeat
from lawdesk.utils.timeutils import ensure_utc

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Google Calendar not configured or disabled"
TOKEN_INVALID = "Google Calendar access token expired or invalid"
DUPLICATE = "Duplicate item skipped"
REFRESH_WINDOW = timedelta(minutes=5)


async def run_calendar_sync():
    """Main loop - drain the sync queue every poll interval."""
    settings = get_settings()
    logger.info("Calendar sync worker started (poll every %ds)", settings.calendar_sync_poll_seconds)

    while True:
        try:
            if settings.calendar_sync_enabled:
                set_correlation_id(generate_correlation_id())
                result = await process_queue()
                if result["processed_count"] or result["error_count"]:
                    logger.info(
                        "Calendar sync run: %d processed, %d errors",
                        result["processed_count"], result["error_count"],
                    )
        except Exception as e:
            logger.error("Calendar sync error: %s", str(e), exc_info=True)

        await write_heartbeat("calendar_sync")
        await asyncio.sleep(settings.calendar_sync_poll_seconds)


async def process_queue(
    batch_size: Optional[int] = None,
    delay_ms: Optional[int] = None,
) -> dict:
    """
    One bounded pass over the queue.
    Returns {processed_count, error_count}; `skipped` is set when another run holds the lock.
    """
    settings = get_settings()
    batch_size = batch_size or settings.calendar_sync_batch_size
    delay_ms = settings.calendar_sync_delay_ms if delay_ms is None else delay_ms

    try:
        async with worker_lock("calendar_sync"):
            return await _drain(batch_size, delay_ms)
    except LockTimeoutError:
        logger.info("Calendar sync already running elsewhere, skipping")
        return {"processed_count": 0, "error_count": 0, "skipped": True}


async def _drain(batch_size: int, delay_ms: int) -> dict:
    processed_count = 0
    error_count = 0

    async with async_session_factory() as db:
        result = await db.execute(
            select(CalendarSyncQueueItem)
            .where(CalendarSyncQueueItem.processed.is_(False))
            .order_by(CalendarSyncQueueItem.created_at)
            .limit(batch_size)
        )
        items = result.scalars().all()
        if not items:
            return {"processed_count": 0, "error_count": 0}

        by_owner: dict = {}
        for item in items:
            by_owner.setdefault(item.owner_id, []).append(item)

        logger.info("Calendar sync: %d items for %d lawyers", len(items), len(by_owner))

        seen: set = set()
        for owner_id, owner_items in by_owner.items():
            owner_errors = 0

            cal = await _load_settings(db, owner_id)
            token = None
            if cal is None or not cal.sync_enabled:
                config_error = NOT_CONFIGURED
            else:
                token = await _ensure_token(db, cal)
                config_error = None if token else TOKEN_INVALID

            if config_error:
                for item in owner_items:
                    _mark(item, config_error)
                error_count += len(owner_items)
                await db.commit()
                logger.warning(
                    "Calendar sync skipped %d items: %s", len(owner_items), config_error,
                    extra={"lawyer_id": str(owner_id), "provider": "google_calendar"},
                )
                continue

            client = GoogleCalendarClient(token, cal.calendar_id)
            for index, item in enumerate(owner_items):
                key = (str(item.appointment_id or item.appointment_data.get("id")), item.operation)
                if key in seen:
                    _mark(item, DUPLICATE)
                    processed_count += 1
                    await db.commit()
                    continue
                seen.add(key)

                try:
                    try:
                        await _apply_item(db, client, item)
                    except CalendarAuthError:
                        client.access_token = await _force_refresh(db, cal)
                        await _apply_item(db, client, item)
                    _mark(item, None)
                    processed_count += 1
                except Exception as e:
                    _mark(item, str(e)[:1000])
                    error_count += 1
                    owner_errors += 1
                    logger.warning(
                        "Calendar sync item failed (%s): %s", item.operation, str(e),
                        extra={"queue_id": str(item.id), "lawyer_id": str(owner_id), "provider": "google_calendar"},
                    )
                await db.commit()

                if delay_ms and index < len(owner_items) - 1:
                    await asyncio.sleep(delay_ms / 1000)

            if owner_errors and owner_errors == len(owner_items):
                from lawdesk.utils.alerting import send_alert, AlertType
                await send_alert(
                    AlertType.CALENDAR_SYNC_FAILED,
                    f"All {owner_errors} calendar sync items failed for lawyer {str(owner_id)[:8]}",
                    extra={"lawyer_id": str(owner_id)},
                )

    return {"processed_count": processed_count, "error_count": error_count}


def _mark(item: CalendarSyncQueueItem, error: Optional[str]) -> None:
    item.processed = True
    item.processed_at = datetime.now(timezone.utc)
    item.error_message = error


async def _load_settings(db: AsyncSession, owner_id) -> Optional[GoogleCalendarSettings]:
    result = await db.execute(
        select(GoogleCalendarSettings).where(GoogleCalendarSettings.user_id == owner_id)
    )
    return result.scalars().first()


async def _ensure_token(db: AsyncSession, cal: GoogleCalendarSettings) -> Optional[str]:
    """Current access token, refreshed when it expires within 5 minutes. None if unusable."""
    if not cal.access_token:
        return None

    now = datetime.now(timezone.utc)
    expires_at = ensure_utc(cal.token_expires_at)
    if expires_at is None:
        needs_refresh = bool(cal.refresh_token)
    else:
        needs_refresh = expires_at - now < REFRESH_WINDOW

    if not needs_refresh:
        return cal.access_token

    if not cal.refresh_token:
        # Expiring soon but still valid: use it; already expired: unusable
        return cal.access_token if expires_at and expires_at > now else None

    try:
        return await _force_refresh(db, cal)
    except CalendarAuthError as e:
        logger.warning(
            "Calendar token refresh failed: %s", str(e),
            extra={"lawyer_id": str(cal.user_id), "provider": "google_calendar"},
        )
        return None


async def _force_refresh(db: AsyncSession, cal: GoogleCalendarSettings) -> str:
    if not cal.refresh_token:
        raise CalendarAuthError(TOKEN_INVALID)

    settings = get_settings()
    refreshed = await refresh_access_token(
        cal.refresh_token, settings.google_client_id, settings.google_client_secret,
    )
    cal.access_token = refreshed["access_token"]
    cal.token_expires_at = refreshed["expires_at"]
    await db.commit()
    logger.info("Calendar token refreshed", extra={"lawyer_id": str(cal.user_id)})
    return cal.access_token


async def _apply_item(
    db: AsyncSession,
    client: GoogleCalendarClient,
    item: CalendarSyncQueueItem,
) -> Optional[str]:
    """Push one queued change to the calendar. Returns the provider event id, if any."""
    settings = get_settings()
    snapshot = item.appointment_data or {}
    payload = build_event_payload(snapshot, settings.timezone)
    title = payload["summary"]
    day = event_window(snapshot)[0].date()

    appointment = None
    if item.appointment_id is not None:
        appointment = await db.get(Appointment, item.appointment_id)

    known_id = (
        item.external_event_id
        or (appointment.external_event_id if appointment is not None else None)
        or snapshot.get("external_event_id")
    )

    event_id: Optional[str] = None
    if item.operation == "INSERT":
        event = await client.create_event(payload)
        event_id = event.get("id")

    elif item.operation == "UPDATE":
        if known_id and await client.update_event(known_id, payload) is not None:
            event_id = known_id
        else:
            found = await client.find_event(title, day)
            if found is not None:
                await client.update_event(found["id"], payload)
                event_id = found["id"]
            else:
                event = await client.create_event(payload)
                event_id = event.get("id")

    elif item.operation == "DELETE":
        if known_id:
            await client.delete_event(known_id)
            event_id = known_id
        else:
            found = await client.find_event(title, day)
            if found is not None:
                await client.delete_event(found["id"])
                event_id = found["id"]

    else:
        raise ValueError(f"Unknown sync operation: {item.operation}")

    if event_id:
        item.external_event_id = event_id
        if appointment is not None and item.operation != "DELETE":
            appointment.external_event_id = event_id
    return event_id
