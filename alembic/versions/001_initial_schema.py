"""Initial schema: scheduling, calendar sync and court-data tables for LawDesk.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Team members
    op.create_table(
        "team_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("full_name", sa.String(200), server_default=""),
        sa.Column("role", sa.String(30), nullable=False, server_default="lawyer"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_team_members_firm", "team_members", ["firm_id"])

    # Clients
    op.create_table(
        "clients",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(30)),
        sa.Column("status", sa.String(20), nullable=False, server_default="lead"),
        sa.Column("created_by", postgresql.UUID(as_uuid=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_clients_firm_email", "clients", ["firm_id", "email"])

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True)),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("reference_id", postgresql.UUID(as_uuid=True)),
        sa.Column("read", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_recipient", "notifications", ["recipient_id", "read"])

    # Availability rules (day_of_week: 0=Sunday ... 6=Saturday)
    op.create_table(
        "availability_rules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("day_of_week", sa.Integer, nullable=False),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("end_time", sa.Time, nullable=False),
        sa.Column("slot_duration_minutes", sa.Integer, nullable=False, server_default="30"),
        sa.Column("buffer_minutes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_per_day", sa.Integer),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_rules_dow"),
        sa.CheckConstraint("start_time < end_time", name="ck_availability_rules_window"),
    )
    op.create_index(
        "ix_availability_rules_owner_day", "availability_rules", ["owner_id", "day_of_week", "active"]
    )

    # Availability exceptions
    op.create_table(
        "availability_exceptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("is_blocked", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("reason", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_availability_exceptions_owner_date", "availability_exceptions", ["owner_id", "date"]
    )

    # Firm holidays
    op.create_table(
        "firm_holidays",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("created_by", postgresql.UUID(as_uuid=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_firm_holidays_firm_date", "firm_holidays", ["firm_id", "date"])

    # Appointments
    op.create_table(
        "appointments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lawyer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True)),
        sa.Column("client_name", sa.String(200)),
        sa.Column("title", sa.String(300)),
        sa.Column("appointment_date", sa.Date, nullable=False),
        sa.Column("appointment_time", sa.Time, nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False, server_default="30"),
        sa.Column("status", sa.String(20), nullable=False, server_default="upcoming"),
        sa.Column("type", sa.String(30), server_default="in-person"),
        sa.Column("notes", sa.Text),
        sa.Column("location", sa.String(300)),
        sa.Column("is_visible_to_team", sa.Boolean, server_default=sa.true()),
        sa.Column("external_event_id", sa.String(255)),
        sa.Column("created_by", postgresql.UUID(as_uuid=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_appointments_lawyer_date", "appointments", ["lawyer_id", "appointment_date", "status"]
    )

    # Google Calendar credentials
    op.create_table(
        "google_calendar_settings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("access_token", sa.Text),
        sa.Column("refresh_token", sa.Text),
        sa.Column("token_expires_at", sa.DateTime(timezone=True)),
        sa.Column("calendar_id", sa.String(255), server_default="primary"),
        sa.Column("sync_enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Calendar sync queue
    op.create_table(
        "calendar_sync_queue",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True)),
        sa.Column("operation", sa.String(10), nullable=False),
        sa.Column("appointment_data", postgresql.JSONB, nullable=False),
        sa.Column("processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("error_message", sa.Text),
        sa.Column("external_event_id", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_calendar_sync_queue_pending", "calendar_sync_queue", ["processed", "created_at"])

    # Cases
    op.create_table(
        "cases",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("case_title", sa.String(500)),
        sa.Column("cnr_number", sa.String(32)),
        sa.Column("court_type", sa.String(50)),
        sa.Column("external_data", postgresql.JSONB),
        sa.Column("last_fetched_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_cases_firm", "cases", ["firm_id"])
    op.create_index("ix_cases_cnr", "cases", ["cnr_number"])

    # Case hearings
    op.create_table(
        "case_hearings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("case_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("cases.id"), nullable=False),
        sa.Column("hearing_date", sa.Date, nullable=False),
        sa.Column("purpose", sa.String(300)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_case_hearings_date", "case_hearings", ["hearing_date"])

    # Case fetch queue
    op.create_table(
        "case_fetch_queue",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("case_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("firm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("cnr_number", sa.String(32), nullable=False),
        sa.Column("court_type", sa.String(50)),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("priority", sa.Integer, server_default="5"),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer, nullable=False, server_default="5"),
        sa.Column("last_error", sa.Text),
        sa.Column("last_error_at", sa.DateTime(timezone=True)),
        sa.Column("next_retry_at", sa.DateTime(timezone=True)),
        sa.Column("queued_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("metadata", postgresql.JSONB, server_default="{}"),
        sa.Column("created_by", postgresql.UUID(as_uuid=True)),
    )
    op.create_index("ix_case_fetch_queue_pick", "case_fetch_queue", ["status", "priority", "queued_at"])
    op.create_index("ix_case_fetch_queue_retry", "case_fetch_queue", ["status", "next_retry_at"])

    # Daily refresh run log
    op.create_table(
        "auto_refresh_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("run_date", sa.Date, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="started"),
        sa.Column("total_hearings", sa.Integer, server_default="0"),
        sa.Column("cases_processed", sa.Integer, server_default="0"),
        sa.Column("success_count", sa.Integer, server_default="0"),
        sa.Column("failed_count", sa.Integer, server_default="0"),
        sa.Column("skipped_count", sa.Integer, server_default="0"),
        sa.Column("timed_out", sa.Boolean, server_default=sa.false()),
        sa.Column("execution_time_ms", sa.Integer),
        sa.Column("error_details", postgresql.JSONB, server_default="[]"),
        sa.Column("success_details", postgresql.JSONB, server_default="[]"),
        sa.Column("error_message", sa.Text),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_auto_refresh_logs_run_date", "auto_refresh_logs", ["run_date"])


def downgrade() -> None:
    op.drop_table("auto_refresh_logs")
    op.drop_table("case_fetch_queue")
    op.drop_table("case_hearings")
    op.drop_table("cases")
    op.drop_table("calendar_sync_queue")
    op.drop_table("google_calendar_settings")
    op.drop_table("appointments")
    op.drop_table("firm_holidays")
    op.drop_table("availability_exceptions")
    op.drop_table("availability_rules")
    op.drop_table("notifications")
    op.drop_table("clients")
    op.drop_table("team_members")
