"""
Notification service - in-app notices for lawyers about new bookings.
Written in its own session so a failure here never touches the booking.
"""
import logging
import uuid
from datetime import date
from typing import Optional

from lawdesk.database import async_session_factory
from lawdesk.models.notification import Notification

logger = logging.getLogger(__name__)


async def notify_lawyer_booking(
    lawyer_id: uuid.UUID,
    firm_id: Optional[uuid.UUID],
    appointment_id: uuid.UUID,
    client_name: str,
    appointment_date: date,
    time_label: str,
) -> bool:
    """Record a 'New Appointment Scheduled' notice for the lawyer. Never raises."""
    message = (
        f"New appointment scheduled with {client_name} "
        f"on {appointment_date.isoformat()} at {time_label}"
    )

    try:
        async with async_session_factory() as db:
            db.add(Notification(
                recipient_id=lawyer_id,
                firm_id=firm_id,
                type="appointment",
                title="New Appointment Scheduled",
                message=message,
                reference_id=appointment_id,
            ))
            await db.commit()
        logger.info(
            "Booking notification stored",
            extra={"lawyer_id": str(lawyer_id), "appointment_id": str(appointment_id)},
        )
        return True
    except Exception as e:
        logger.error(
            "Failed to store booking notification: %s", str(e),
            extra={"lawyer_id": str(lawyer_id), "appointment_id": str(appointment_id)},
        )
        return False
