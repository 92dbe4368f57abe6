"""
Booking transaction - the public booking form and staff booking both end here.

Flow:
1. Validate required fields
2. Resolve the lawyer's firm from team membership (never from the caller)
3. Re-check blocked date / daily cap / overlap against the live ledger
4. Find or create the client, insert and commit the appointment (status 'upcoming')
5. Best-effort lawyer notification, only after the commit
"""
import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from lawdesk.config import get_settings
from lawdesk.models.appointment import Appointment
from lawdesk.models.client import Client
from lawdesk.services.appointments import create_appointment
from lawdesk.services.availability import get_team_membership, load_day_context
from lawdesk.services.notifications import notify_lawyer_booking
from lawdesk.services.slots import check_slot_conflict
from lawdesk.utils.timeutils import parse_clock_time

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base class for booking rejections."""
    pass


class BookingValidationError(BookingError):
    pass


class LawyerNotFoundError(BookingError):
    pass


class BookingConflictError(BookingError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def _validate(day, time_value, duration_minutes, client_info: dict):
    missing = []
    if not isinstance(day, date):
        missing.append("date")
    clock = parse_clock_time(time_value)
    if clock is None:
        missing.append("time")
    if not isinstance(duration_minutes, int) or duration_minutes <= 0:
        missing.append("duration_minutes")
    name = (client_info.get("name") or "").strip()
    email = (client_info.get("email") or "").strip().lower()
    if not name:
        missing.append("client name")
    if not email or "@" not in email:
        missing.append("client email")
    if missing:
        raise BookingValidationError(f"Missing or invalid fields: {', '.join(missing)}")
    return clock, name, email


async def find_or_create_client(
    db: AsyncSession,
    firm_id: uuid.UUID,
    name: str,
    email: str,
    phone: Optional[str] = None,
    created_by: Optional[uuid.UUID] = None,
) -> Client:
    result = await db.execute(
        select(Client).where(
            Client.firm_id == firm_id,
            func.lower(Client.email) == email.lower(),
        )
    )
    client = result.scalars().first()
    if client is not None:
        return client

    client = Client(
        firm_id=firm_id,
        full_name=name,
        email=email.lower(),
        phone=phone,
        status="lead",
        created_by=created_by,
    )
    db.add(client)
    await db.flush()
    logger.info("Client created from booking", extra={"firm_id": str(firm_id)})
    return client


async def book(
    db: AsyncSession,
    lawyer_id: uuid.UUID,
    day: date,
    time_value,
    duration_minutes: int,
    client_info: dict,
    reason: Optional[str] = None,
    appointment_type: str = "in-person",
    created_by: Optional[uuid.UUID] = None,
    revalidate: Optional[bool] = None,
) -> Appointment:
    """
    Create an appointment for `lawyer_id`.
    Raises BookingValidationError, LawyerNotFoundError or BookingConflictError.
    """
    clock, name, email = _validate(day, time_value, duration_minutes, client_info)

    member = await get_team_membership(db, lawyer_id)
    if member is None:
        raise LawyerNotFoundError(f"Lawyer {lawyer_id} is not a member of any firm")
    firm_id = member.firm_id

    settings = get_settings()
    if revalidate is None:
        revalidate = settings.booking_revalidate_slots
    if revalidate:
        context = await load_day_context(db, lawyer_id, day)
        conflict = check_slot_conflict(
            lawyer_id,
            day,
            clock,
            duration_minutes,
            context["rules"],
            context["exceptions"],
            context["holidays"],
            context["appointments"],
            firm_id=firm_id,
            tz_name=settings.timezone,
        )
        if conflict:
            logger.info(
                "Booking rejected: %s", conflict,
                extra={"lawyer_id": str(lawyer_id)},
            )
            raise BookingConflictError(conflict)

    client = await find_or_create_client(
        db, firm_id, name, email, phone=client_info.get("phone"), created_by=created_by,
    )

    appointment = await create_appointment(
        db,
        lawyer_id=lawyer_id,
        firm_id=firm_id,
        client_id=client.id,
        client_name=name,
        title=f"Appointment with {name}",
        appointment_date=day,
        appointment_time=clock,
        duration_minutes=duration_minutes,
        status="upcoming",
        type=appointment_type or "in-person",
        notes=reason,
        is_visible_to_team=True,
        created_by=created_by,
    )
    # Appointment is durable before the lawyer hears about it
    await db.commit()

    await notify_lawyer_booking(
        lawyer_id=lawyer_id,
        firm_id=firm_id,
        appointment_id=appointment.id,
        client_name=name,
        appointment_date=day,
        time_label=clock.strftime("%H:%M"),
    )

    return appointment
