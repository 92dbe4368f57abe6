"""
TeamMember model - links a user (lawyer, admin, staff) to the firm they work in.
Booking resolves a lawyer's firm through this table rather than trusting the caller.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import String, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from lawdesk.database import Base


class TeamMember(Base):
    __tablename__ = "team_members"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    firm_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, unique=True
    )
    full_name: Mapped[str] = mapped_column(String(200), default="")
    role: Mapped[str] = mapped_column(
        String(30), default="lawyer", nullable=False
    )  # admin, lawyer, junior, paralegal, office_staff, receptionist

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_team_members_firm", "firm_id"),
    )

    def __repr__(self) -> str:
        return f"<TeamMember {self.user_id} ({self.role})>"
