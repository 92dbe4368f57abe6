"""
Booking and appointment ledger endpoints.
"""
import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from lawdesk.database import get_db
from lawdesk.models.appointment import Appointment
from lawdesk.schemas.api_responses import (
    AppointmentResponse,
    BookingRequest,
    RescheduleRequest,
    StatusUpdateRequest,
)
from lawdesk.services import appointments as appointment_service
from lawdesk.services.appointments import AppointmentNotFoundError, InvalidStatusTransitionError
from lawdesk.services.booking import (
    BookingConflictError,
    BookingValidationError,
    LawyerNotFoundError,
    book,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["appointments"])


def _appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=str(appointment.id),
        lawyer_id=str(appointment.lawyer_id),
        firm_id=str(appointment.firm_id),
        client_id=str(appointment.client_id) if appointment.client_id else None,
        title=appointment.title,
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_time.strftime("%H:%M"),
        duration_minutes=appointment.duration_minutes,
        status=appointment.status,
        type=appointment.type,
        notes=appointment.notes,
    )


@router.post("/api/v1/bookings", response_model=AppointmentResponse, status_code=201)
async def create_booking(
    payload: BookingRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        lawyer_id = uuid.UUID(payload.lawyer_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid lawyer_id")

    try:
        appointment = await book(
            db,
            lawyer_id=lawyer_id,
            day=payload.date,
            time_value=payload.time,
            duration_minutes=payload.duration_minutes,
            client_info={
                "name": payload.client_name,
                "email": payload.client_email,
                "phone": payload.client_phone,
            },
            reason=payload.reason,
            appointment_type=payload.type,
        )
    except BookingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LawyerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BookingConflictError as e:
        raise HTTPException(status_code=409, detail=e.reason)

    return _appointment_response(appointment)


@router.patch("/api/v1/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: uuid.UUID,
    payload: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        appointment = await appointment_service.update_status(db, appointment_id, payload.status)
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _appointment_response(appointment)


@router.post("/api/v1/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: uuid.UUID,
    payload: RescheduleRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        appointment = await appointment_service.reschedule(
            db, appointment_id, payload.date, payload.time, payload.duration_minutes,
        )
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _appointment_response(appointment)


@router.delete("/api/v1/appointments/{appointment_id}")
async def delete_appointment(
    appointment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        await appointment_service.delete_appointment(db, appointment_id)
    except AppointmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "deleted"}
