"""
CaseFetchQueueItem model - court-data ingestion queue.
Transitions: queued → processing → completed | failed.
Failed items with retry_count < max_retries carry a next_retry_at and are
re-picked by later batches; exhausted items have next_retry_at = NULL.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from lawdesk.database import Base


class CaseFetchQueueItem(Base):
    __tablename__ = "case_fetch_queue"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, unique=True
    )
    firm_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    cnr_number: Mapped[str] = mapped_column(String(32), nullable=False)
    court_type: Mapped[Optional[str]] = mapped_column(String(50))

    status: Mapped[str] = mapped_column(
        String(20), default="queued", nullable=False
    )  # queued, processing, completed, failed
    priority: Mapped[int] = mapped_column(Integer, default=5)  # lower runs first

    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    last_error_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    queued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONB, default=dict)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))

    __table_args__ = (
        Index("ix_case_fetch_queue_pick", "status", "priority", "queued_at"),
        Index("ix_case_fetch_queue_retry", "status", "next_retry_at"),
    )

    def __repr__(self) -> str:
        return f"<CaseFetchQueueItem {self.cnr_number} ({self.status}, retries={self.retry_count})>"
