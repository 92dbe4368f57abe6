"""
Appointment model - the ledger conflict detection runs against.
Lifecycle: upcoming → arrived / in-progress / late / rescheduled → completed.
Cancellation is a status, never a row delete in the normal flow.
"""
import uuid
from datetime import date, datetime, time, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, Boolean, Date, Time, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from lawdesk.database import Base


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    lawyer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    firm_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    client_name: Mapped[Optional[str]] = mapped_column(String(200))

    title: Mapped[Optional[str]] = mapped_column(String(300))
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    appointment_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="upcoming", nullable=False
    )  # upcoming, arrived, in-progress, completed, cancelled, rescheduled, late
    type: Mapped[str] = mapped_column(String(30), default="in-person")  # in-person, video-call, phone
    notes: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(String(300))
    is_visible_to_team: Mapped[bool] = mapped_column(Boolean, default=True)

    # Provider event id, written back by the calendar sync worker
    external_event_id: Mapped[Optional[str]] = mapped_column(String(255))

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_appointments_lawyer_date", "lawyer_id", "appointment_date", "status"),
    )

    def __repr__(self) -> str:
        return f"<Appointment {self.appointment_date} {self.appointment_time} ({self.status})>"
