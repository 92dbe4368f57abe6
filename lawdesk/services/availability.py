"""
Availability service - rule store, exception calendar, firm holidays, and the
slot query that feeds them into the slot generator.
"""
import logging
import uuid
from datetime import date, timedelta
from typing import Any, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from lawdesk.models.availability import AvailabilityRule, AvailabilityException, FirmHoliday
from lawdesk.models.appointment import Appointment
from lawdesk.models.team_member import TeamMember
from lawdesk.services.slots import TimeSlot, generate_slots
from lawdesk.utils.timeutils import parse_clock_time

logger = logging.getLogger(__name__)

# Team roles that observe firm holidays
HOLIDAY_ROLES = ("admin", "lawyer", "junior", "paralegal")

RULE_FIELDS = (
    "day_of_week",
    "start_time",
    "end_time",
    "slot_duration_minutes",
    "buffer_minutes",
    "max_per_day",
    "active",
)


class AvailabilityValidationError(ValueError):
    """Raised when a rule, exception or holiday is malformed."""
    pass


class AvailabilityNotFoundError(LookupError):
    pass


def validate_rule(values: dict) -> dict:
    """Normalise and validate rule fields. Returns a cleaned copy."""
    cleaned = dict(values)

    dow = cleaned.get("day_of_week")
    if not isinstance(dow, int) or isinstance(dow, bool) or not 0 <= dow <= 6:
        raise AvailabilityValidationError("day_of_week must be an integer 0 (Sunday) to 6 (Saturday)")

    start = parse_clock_time(cleaned.get("start_time"))
    end = parse_clock_time(cleaned.get("end_time"))
    if start is None or end is None:
        raise AvailabilityValidationError("start_time and end_time must be valid HH:MM times")
    if start >= end:
        raise AvailabilityValidationError("start_time must be before end_time")
    cleaned["start_time"] = start
    cleaned["end_time"] = end

    duration = cleaned.get("slot_duration_minutes", 30)
    if not isinstance(duration, int) or duration <= 0:
        raise AvailabilityValidationError("slot_duration_minutes must be a positive integer")
    cleaned["slot_duration_minutes"] = duration

    buffer = cleaned.get("buffer_minutes", 0)
    if buffer is None:
        buffer = 0
    if not isinstance(buffer, int) or buffer < 0:
        raise AvailabilityValidationError("buffer_minutes must be zero or more")
    cleaned["buffer_minutes"] = buffer

    cap = cleaned.get("max_per_day")
    if cap is not None and (not isinstance(cap, int) or cap <= 0):
        raise AvailabilityValidationError("max_per_day must be empty or a positive integer")

    return cleaned


# --- Rules ---------------------------------------------------------------

async def create_rule(db: AsyncSession, owner_id: uuid.UUID, **values) -> AvailabilityRule:
    cleaned = validate_rule(values)
    rule = AvailabilityRule(
        owner_id=owner_id,
        day_of_week=cleaned["day_of_week"],
        start_time=cleaned["start_time"],
        end_time=cleaned["end_time"],
        slot_duration_minutes=cleaned["slot_duration_minutes"],
        buffer_minutes=cleaned["buffer_minutes"],
        max_per_day=cleaned.get("max_per_day"),
        active=cleaned.get("active", True),
    )
    db.add(rule)
    await db.flush()
    logger.info(
        "Availability rule created: dow=%d %s-%s",
        rule.day_of_week, rule.start_time, rule.end_time,
        extra={"lawyer_id": str(owner_id)},
    )
    return rule


async def get_rule(db: AsyncSession, rule_id: uuid.UUID) -> AvailabilityRule:
    rule = await db.get(AvailabilityRule, rule_id)
    if rule is None:
        raise AvailabilityNotFoundError(f"Availability rule {rule_id} not found")
    return rule


async def update_rule(db: AsyncSession, rule_id: uuid.UUID, **changes) -> AvailabilityRule:
    """Apply a partial update; the merged rule must still validate."""
    rule = await get_rule(db, rule_id)
    merged = {field: getattr(rule, field) for field in RULE_FIELDS}
    merged.update({k: v for k, v in changes.items() if k in RULE_FIELDS})
    cleaned = validate_rule(merged)
    for field in RULE_FIELDS:
        setattr(rule, field, cleaned.get(field))
    await db.flush()
    return rule


async def deactivate_rule(db: AsyncSession, rule_id: uuid.UUID) -> AvailabilityRule:
    rule = await get_rule(db, rule_id)
    rule.active = False
    await db.flush()
    return rule


async def delete_rule(db: AsyncSession, rule_id: uuid.UUID) -> None:
    rule = await get_rule(db, rule_id)
    await db.delete(rule)
    await db.flush()


async def list_rules(
    db: AsyncSession,
    owner_id: uuid.UUID,
    active_only: bool = False,
) -> list[AvailabilityRule]:
    query = select(AvailabilityRule).where(AvailabilityRule.owner_id == owner_id)
    if active_only:
        query = query.where(AvailabilityRule.active.is_(True))
    query = query.order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_time)
    result = await db.execute(query)
    return list(result.scalars().all())


# --- Exceptions ----------------------------------------------------------

async def add_exception(
    db: AsyncSession,
    owner_id: uuid.UUID,
    day: date,
    reason: Optional[str] = None,
) -> AvailabilityException:
    """Block a single date. Returns the existing row if the date is already blocked."""
    existing = await db.execute(
        select(AvailabilityException).where(
            AvailabilityException.owner_id == owner_id,
            AvailabilityException.exception_date == day,
            AvailabilityException.is_blocked.is_(True),
        )
    )
    found = existing.scalars().first()
    if found is not None:
        return found

    exc = AvailabilityException(owner_id=owner_id, exception_date=day, is_blocked=True, reason=reason)
    db.add(exc)
    await db.flush()
    return exc


async def add_exception_range(
    db: AsyncSession,
    owner_id: uuid.UUID,
    start: date,
    end: date,
    reason: Optional[str] = None,
) -> list[AvailabilityException]:
    """Expand an inclusive date range into one blocked row per date."""
    if end < start:
        raise AvailabilityValidationError("End date must be on or after start date")

    result = await db.execute(
        select(AvailabilityException.exception_date).where(
            AvailabilityException.owner_id == owner_id,
            AvailabilityException.exception_date >= start,
            AvailabilityException.exception_date <= end,
            AvailabilityException.is_blocked.is_(True),
        )
    )
    already = set(result.scalars().all())

    created = []
    current = start
    while current <= end:
        if current not in already:
            exc = AvailabilityException(
                owner_id=owner_id, exception_date=current, is_blocked=True, reason=reason,
            )
            db.add(exc)
            created.append(exc)
        current += timedelta(days=1)
    await db.flush()

    logger.info(
        "Blocked %d date(s) %s..%s (%d already blocked)",
        len(created), start.isoformat(), end.isoformat(), len(already),
        extra={"lawyer_id": str(owner_id)},
    )
    return created


async def delete_exception(db: AsyncSession, exception_id: uuid.UUID) -> None:
    exc = await db.get(AvailabilityException, exception_id)
    if exc is None:
        raise AvailabilityNotFoundError(f"Availability exception {exception_id} not found")
    await db.delete(exc)
    await db.flush()


async def list_exceptions(db: AsyncSession, owner_id: uuid.UUID) -> list[AvailabilityException]:
    result = await db.execute(
        select(AvailabilityException)
        .where(AvailabilityException.owner_id == owner_id)
        .order_by(AvailabilityException.exception_date)
    )
    return list(result.scalars().all())


# --- Firm holidays -------------------------------------------------------

async def create_holiday(
    db: AsyncSession,
    firm_id: uuid.UUID,
    day: date,
    name: str,
    description: Optional[str] = None,
    created_by: Optional[uuid.UUID] = None,
) -> FirmHoliday:
    if not name or not name.strip():
        raise AvailabilityValidationError("Holiday name is required")
    holiday = FirmHoliday(
        firm_id=firm_id,
        holiday_date=day,
        name=name.strip(),
        description=description,
        created_by=created_by,
    )
    db.add(holiday)
    await db.flush()
    return holiday


async def delete_holiday(db: AsyncSession, holiday_id: uuid.UUID) -> None:
    result = await db.execute(delete(FirmHoliday).where(FirmHoliday.id == holiday_id))
    if result.rowcount == 0:
        raise AvailabilityNotFoundError(f"Firm holiday {holiday_id} not found")


async def list_holidays(db: AsyncSession, firm_id: uuid.UUID) -> list[FirmHoliday]:
    result = await db.execute(
        select(FirmHoliday)
        .where(FirmHoliday.firm_id == firm_id)
        .order_by(FirmHoliday.holiday_date)
    )
    return list(result.scalars().all())


# --- Blocked dates -------------------------------------------------------

async def get_team_membership(db: AsyncSession, user_id: uuid.UUID) -> Optional[TeamMember]:
    result = await db.execute(select(TeamMember).where(TeamMember.user_id == user_id))
    return result.scalars().first()


async def get_blocked_dates(db: AsyncSession, lawyer_id: uuid.UUID) -> list[dict]:
    """
    Individual blocked dates plus firm holidays (for roles that observe them).
    Each entry: {date, reason, source} with source 'individual' or 'firm_holiday'.
    """
    blocked = [
        {"date": exc.exception_date, "reason": exc.reason, "source": "individual"}
        for exc in await list_exceptions(db, lawyer_id)
        if exc.is_blocked
    ]

    member = await get_team_membership(db, lawyer_id)
    if member is not None and member.role in HOLIDAY_ROLES:
        for holiday in await list_holidays(db, member.firm_id):
            blocked.append({"date": holiday.holiday_date, "reason": holiday.name, "source": "firm_holiday"})

    return blocked


async def is_date_blocked(db: AsyncSession, lawyer_id: uuid.UUID, day: date) -> bool:
    return any(entry["date"] == day for entry in await get_blocked_dates(db, lawyer_id))


# --- Slot query ----------------------------------------------------------

async def load_day_context(db: AsyncSession, lawyer_id: uuid.UUID, day: date) -> dict[str, Any]:
    """Everything the slot generator needs for one lawyer and one day."""
    rules = await list_rules(db, lawyer_id, active_only=True)

    result = await db.execute(
        select(AvailabilityException).where(
            AvailabilityException.owner_id == lawyer_id,
            AvailabilityException.exception_date == day,
        )
    )
    exceptions = list(result.scalars().all())

    member = await get_team_membership(db, lawyer_id)
    firm_id = member.firm_id if member is not None else None
    holidays: list[FirmHoliday] = []
    if member is not None and member.role in HOLIDAY_ROLES:
        result = await db.execute(
            select(FirmHoliday).where(
                FirmHoliday.firm_id == member.firm_id,
                FirmHoliday.holiday_date == day,
            )
        )
        holidays = list(result.scalars().all())

    result = await db.execute(
        select(Appointment).where(
            Appointment.lawyer_id == lawyer_id,
            Appointment.appointment_date == day,
            Appointment.status != "cancelled",
        )
    )
    appointments = list(result.scalars().all())

    return {
        "rules": rules,
        "exceptions": exceptions,
        "holidays": holidays,
        "appointments": appointments,
        "firm_id": firm_id,
    }


async def get_slots_for_lawyer(
    db: AsyncSession,
    lawyer_id: uuid.UUID,
    day: date,
    dedupe: bool = False,
) -> list[TimeSlot]:
    from lawdesk.config import get_settings

    context = await load_day_context(db, lawyer_id, day)
    return generate_slots(
        lawyer_id,
        day,
        context["rules"],
        context["exceptions"],
        context["holidays"],
        context["appointments"],
        firm_id=context["firm_id"],
        dedupe=dedupe,
        tz_name=get_settings().timezone,
    )
