"""
Appointment ledger - create, status transitions, reschedule, delete.

Every mutation publishes a calendar sync event:
create → INSERT, status change / reschedule → UPDATE, cancel / delete → DELETE.
"""
import logging
import uuid
from datetime import date, time
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from lawdesk.models.appointment import Appointment
from lawdesk.services.calendar_sync import enqueue_sync
from lawdesk.utils.timeutils import parse_clock_time

logger = logging.getLogger(__name__)

STATUSES = ("upcoming", "arrived", "in-progress", "completed", "cancelled", "rescheduled", "late")
TERMINAL_STATUSES = ("completed", "cancelled")

ALLOWED_TRANSITIONS = {
    "upcoming": {"arrived", "in-progress", "completed", "cancelled", "rescheduled", "late"},
    "late": {"arrived", "in-progress", "completed", "cancelled", "rescheduled"},
    "arrived": {"in-progress", "completed", "cancelled"},
    "in-progress": {"completed"},
    "rescheduled": {"upcoming", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


class AppointmentNotFoundError(LookupError):
    pass


class InvalidStatusTransitionError(ValueError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change appointment status from '{current}' to '{requested}'")


def can_transition(current: str, requested: str) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, set())


async def get_appointment(db: AsyncSession, appointment_id: uuid.UUID) -> Appointment:
    appointment = await db.get(Appointment, appointment_id)
    if appointment is None:
        raise AppointmentNotFoundError(f"Appointment {appointment_id} not found")
    return appointment


async def create_appointment(db: AsyncSession, **fields) -> Appointment:
    appointment = Appointment(**fields)
    if not appointment.status:
        appointment.status = "upcoming"
    db.add(appointment)
    await db.flush()
    await enqueue_sync(db, appointment, "INSERT")
    logger.info(
        "Appointment created for %s %s",
        appointment.appointment_date, appointment.appointment_time,
        extra={"appointment_id": str(appointment.id), "lawyer_id": str(appointment.lawyer_id)},
    )
    return appointment


async def list_day_appointments(
    db: AsyncSession,
    lawyer_id: uuid.UUID,
    day: date,
    include_cancelled: bool = False,
) -> list[Appointment]:
    query = select(Appointment).where(
        Appointment.lawyer_id == lawyer_id,
        Appointment.appointment_date == day,
    )
    if not include_cancelled:
        query = query.where(Appointment.status != "cancelled")
    result = await db.execute(query.order_by(Appointment.appointment_time))
    return list(result.scalars().all())


async def count_day_appointments(db: AsyncSession, lawyer_id: uuid.UUID, day: date) -> int:
    result = await db.execute(
        select(func.count(Appointment.id)).where(
            Appointment.lawyer_id == lawyer_id,
            Appointment.appointment_date == day,
            Appointment.status != "cancelled",
        )
    )
    return result.scalar_one()


async def update_status(db: AsyncSession, appointment_id: uuid.UUID, status: str) -> Appointment:
    if status not in STATUSES:
        raise InvalidStatusTransitionError("unknown", status)

    appointment = await get_appointment(db, appointment_id)
    current = appointment.status
    if current == status:
        return appointment
    if not can_transition(current, status):
        raise InvalidStatusTransitionError(current, status)

    appointment.status = status
    await db.flush()
    await enqueue_sync(db, appointment, "DELETE" if status == "cancelled" else "UPDATE")

    logger.info(
        "Appointment status %s -> %s", current, status,
        extra={"appointment_id": str(appointment.id)},
    )
    return appointment


async def reschedule(
    db: AsyncSession,
    appointment_id: uuid.UUID,
    new_date: date,
    new_time,
    duration_minutes: Optional[int] = None,
) -> Appointment:
    """Move an appointment and mark it rescheduled. Terminal appointments cannot move."""
    appointment = await get_appointment(db, appointment_id)
    if appointment.status in TERMINAL_STATUSES:
        raise InvalidStatusTransitionError(appointment.status, "rescheduled")

    clock: Optional[time] = parse_clock_time(new_time)
    if clock is None:
        raise ValueError("Invalid appointment time")
    if duration_minutes is not None and duration_minutes <= 0:
        raise ValueError("Duration must be positive")

    appointment.appointment_date = new_date
    appointment.appointment_time = clock
    if duration_minutes is not None:
        appointment.duration_minutes = duration_minutes
    appointment.status = "rescheduled"
    await db.flush()
    await enqueue_sync(db, appointment, "UPDATE")
    return appointment


async def delete_appointment(db: AsyncSession, appointment_id: uuid.UUID) -> None:
    """Administrative hard delete. The sync item keeps a snapshot of the row."""
    appointment = await get_appointment(db, appointment_id)
    await enqueue_sync(db, appointment, "DELETE")
    await db.delete(appointment)
    await db.flush()
    logger.info("Appointment deleted", extra={"appointment_id": str(appointment_id)})
