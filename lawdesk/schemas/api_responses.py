"""
API request/response schemas for the scheduling and queue endpoints.
"""
from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field


class SlotResponse(BaseModel):
    time: str
    available: bool
    reason: Optional[str] = None
    duration_minutes: Optional[int] = None


class SlotListResponse(BaseModel):
    lawyer_id: str
    date: date
    slots: list[SlotResponse]


class RuleCreateRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    slot_duration_minutes: int = 30
    buffer_minutes: int = 0
    max_per_day: Optional[int] = None
    active: bool = True


class RuleUpdateRequest(BaseModel):
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    slot_duration_minutes: Optional[int] = None
    buffer_minutes: Optional[int] = None
    max_per_day: Optional[int] = None
    active: Optional[bool] = None


class RuleResponse(BaseModel):
    id: str
    owner_id: str
    day_of_week: int
    start_time: str
    end_time: str
    slot_duration_minutes: int
    buffer_minutes: int
    max_per_day: Optional[int] = None
    active: bool


class ExceptionCreateRequest(BaseModel):
    start_date: date
    end_date: Optional[date] = None
    reason: Optional[str] = None


class ExceptionResponse(BaseModel):
    id: str
    owner_id: str
    date: date
    is_blocked: bool
    reason: Optional[str] = None


class BlockedDateResponse(BaseModel):
    date: date
    reason: Optional[str] = None
    source: str


class HolidayCreateRequest(BaseModel):
    date: date
    name: str
    description: Optional[str] = None


class HolidayResponse(BaseModel):
    id: str
    firm_id: str
    date: date
    name: str
    description: Optional[str] = None


class BookingRequest(BaseModel):
    lawyer_id: str
    date: date
    time: str
    duration_minutes: int = 30
    client_name: str
    client_email: str
    client_phone: Optional[str] = None
    reason: Optional[str] = None
    type: str = "in-person"


class AppointmentResponse(BaseModel):
    id: str
    lawyer_id: str
    firm_id: str
    client_id: Optional[str] = None
    title: Optional[str] = None
    appointment_date: date
    appointment_time: str
    duration_minutes: int
    status: str
    type: Optional[str] = None
    notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str


class RescheduleRequest(BaseModel):
    date: date
    time: str
    duration_minutes: Optional[int] = None


class SyncRunResponse(BaseModel):
    processed_count: int
    error_count: int
    skipped: bool = False


class FetchEnqueueRequest(BaseModel):
    case_id: str
    firm_id: str
    cnr_number: str
    court_type: Optional[str] = None
    priority: int = 5
    max_retries: Optional[int] = None


class FetchQueueItemResponse(BaseModel):
    id: str
    case_id: str
    cnr_number: str
    status: str
    priority: int
    retry_count: int
    max_retries: int
    last_error: Optional[str] = None
    next_retry_at: Optional[datetime] = None


class FetchBatchRequest(BaseModel):
    batch_size: Optional[int] = Field(default=None, gt=0, le=100)
    delay_ms: Optional[int] = Field(default=None, ge=0)


class FetchBatchResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    skipped: int
    errors: list[dict] = []


class HearingRefreshRequest(BaseModel):
    target_date: Optional[date] = Field(default=None, alias="date")
