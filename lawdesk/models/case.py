"""
Case models - the slice of case tracking the court-data refresh touches:
cases with a CNR, their scheduled hearings, and the daily refresh run log.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, Boolean, Date, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from lawdesk.database import Base


class Case(Base):
    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    firm_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    case_title: Mapped[Optional[str]] = mapped_column(String(500))
    cnr_number: Mapped[Optional[str]] = mapped_column(String(32))
    court_type: Mapped[Optional[str]] = mapped_column(String(50))

    # Latest provider payload and when it was fetched
    external_data: Mapped[Optional[dict]] = mapped_column(JSONB)
    last_fetched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_cases_firm", "firm_id"),
        Index("ix_cases_cnr", "cnr_number"),
    )


class CaseHearing(Base):
    __tablename__ = "case_hearings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id"), nullable=False
    )
    hearing_date: Mapped[date] = mapped_column(Date, nullable=False)
    purpose: Mapped[Optional[str]] = mapped_column(String(300))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_case_hearings_date", "hearing_date"),
    )


class AutoRefreshLog(Base):
    __tablename__ = "auto_refresh_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    run_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="started", nullable=False
    )  # started, completed, failed

    total_hearings: Mapped[int] = mapped_column(Integer, default=0)
    cases_processed: Mapped[int] = mapped_column(Integer, default=0)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0)
    timed_out: Mapped[bool] = mapped_column(Boolean, default=False)
    execution_time_ms: Mapped[Optional[int]] = mapped_column(Integer)

    # [{case_id, cnr_number, error}] - the next run retries these first
    error_details: Mapped[Optional[list]] = mapped_column(JSONB, default=list)
    success_details: Mapped[Optional[list]] = mapped_column(JSONB, default=list)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_auto_refresh_logs_run_date", "run_date"),
    )
