"""
Availability endpoints - slot query, weekly rules, blocked dates, firm holidays.
"""
import logging
import uuid
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from lawdesk.database import get_db
from lawdesk.models.availability import AvailabilityRule, AvailabilityException, FirmHoliday
from lawdesk.schemas.api_responses import (
    BlockedDateResponse,
    ExceptionCreateRequest,
    ExceptionResponse,
    HolidayCreateRequest,
    HolidayResponse,
    RuleCreateRequest,
    RuleResponse,
    RuleUpdateRequest,
    SlotListResponse,
    SlotResponse,
)
from lawdesk.services import availability as availability_service
from lawdesk.services.availability import AvailabilityNotFoundError, AvailabilityValidationError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["availability"])


def _rule_response(rule: AvailabilityRule) -> RuleResponse:
    return RuleResponse(
        id=str(rule.id),
        owner_id=str(rule.owner_id),
        day_of_week=rule.day_of_week,
        start_time=rule.start_time.strftime("%H:%M"),
        end_time=rule.end_time.strftime("%H:%M"),
        slot_duration_minutes=rule.slot_duration_minutes,
        buffer_minutes=rule.buffer_minutes,
        max_per_day=rule.max_per_day,
        active=rule.active,
    )


def _exception_response(exc: AvailabilityException) -> ExceptionResponse:
    return ExceptionResponse(
        id=str(exc.id),
        owner_id=str(exc.owner_id),
        date=exc.exception_date,
        is_blocked=exc.is_blocked,
        reason=exc.reason,
    )


def _holiday_response(holiday: FirmHoliday) -> HolidayResponse:
    return HolidayResponse(
        id=str(holiday.id),
        firm_id=str(holiday.firm_id),
        date=holiday.holiday_date,
        name=holiday.name,
        description=holiday.description,
    )


@router.get("/api/v1/lawyers/{lawyer_id}/slots", response_model=SlotListResponse)
async def get_slots(
    lawyer_id: uuid.UUID,
    day: date = Query(..., alias="date"),
    dedupe: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    slots = await availability_service.get_slots_for_lawyer(db, lawyer_id, day, dedupe=dedupe)
    return SlotListResponse(
        lawyer_id=str(lawyer_id),
        date=day,
        slots=[SlotResponse(**slot.model_dump()) for slot in slots],
    )


# --- Rules ---

@router.get("/api/v1/lawyers/{lawyer_id}/availability/rules", response_model=list[RuleResponse])
async def list_rules(
    lawyer_id: uuid.UUID,
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    rules = await availability_service.list_rules(db, lawyer_id, active_only=active_only)
    return [_rule_response(r) for r in rules]


@router.post("/api/v1/lawyers/{lawyer_id}/availability/rules", response_model=RuleResponse, status_code=201)
async def create_rule(
    lawyer_id: uuid.UUID,
    payload: RuleCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        rule = await availability_service.create_rule(db, lawyer_id, **payload.model_dump())
    except AvailabilityValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _rule_response(rule)


@router.patch("/api/v1/availability/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: uuid.UUID,
    payload: RuleUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    try:
        rule = await availability_service.update_rule(db, rule_id, **changes)
    except AvailabilityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AvailabilityValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _rule_response(rule)


@router.delete("/api/v1/availability/rules/{rule_id}")
async def delete_rule(
    rule_id: uuid.UUID,
    soft: bool = Query(False, description="Deactivate instead of deleting"),
    db: AsyncSession = Depends(get_db),
):
    try:
        if soft:
            await availability_service.deactivate_rule(db, rule_id)
        else:
            await availability_service.delete_rule(db, rule_id)
    except AvailabilityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "deactivated" if soft else "deleted"}


# --- Exceptions ---

@router.get("/api/v1/lawyers/{lawyer_id}/availability/exceptions", response_model=list[ExceptionResponse])
async def list_exceptions(
    lawyer_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return [_exception_response(e) for e in await availability_service.list_exceptions(db, lawyer_id)]


@router.post(
    "/api/v1/lawyers/{lawyer_id}/availability/exceptions",
    response_model=list[ExceptionResponse],
    status_code=201,
)
async def create_exceptions(
    lawyer_id: uuid.UUID,
    payload: ExceptionCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        if payload.end_date and payload.end_date != payload.start_date:
            created = await availability_service.add_exception_range(
                db, lawyer_id, payload.start_date, payload.end_date, payload.reason,
            )
        else:
            created = [await availability_service.add_exception(
                db, lawyer_id, payload.start_date, payload.reason,
            )]
    except AvailabilityValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [_exception_response(e) for e in created]


@router.delete("/api/v1/availability/exceptions/{exception_id}")
async def delete_exception(
    exception_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        await availability_service.delete_exception(db, exception_id)
    except AvailabilityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "deleted"}


@router.get("/api/v1/lawyers/{lawyer_id}/blocked-dates", response_model=list[BlockedDateResponse])
async def get_blocked_dates(
    lawyer_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return [BlockedDateResponse(**entry) for entry in await availability_service.get_blocked_dates(db, lawyer_id)]


# --- Firm holidays ---

@router.get("/api/v1/firms/{firm_id}/holidays", response_model=list[HolidayResponse])
async def list_holidays(
    firm_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return [_holiday_response(h) for h in await availability_service.list_holidays(db, firm_id)]


@router.post("/api/v1/firms/{firm_id}/holidays", response_model=HolidayResponse, status_code=201)
async def create_holiday(
    firm_id: uuid.UUID,
    payload: HolidayCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        holiday = await availability_service.create_holiday(
            db, firm_id, payload.date, payload.name, payload.description,
        )
    except AvailabilityValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _holiday_response(holiday)


@router.delete("/api/v1/holidays/{holiday_id}")
async def delete_holiday(
    holiday_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        await availability_service.delete_holiday(db, holiday_id)
    except AvailabilityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "deleted"}
