"""
Slot generation - turns a lawyer's weekly rules, blocked dates, holidays and
booked appointments into the day's list of bookable / unbookable slots.

Pure functions: no I/O, inputs are never mutated. Rows may be ORM objects or
plain dicts, so the same code serves the API, the booking re-check and tests.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from pydantic import BaseModel

from lawdesk.utils.timeutils import (
    DEFAULT_TIMEZONE,
    day_of_week,
    format_hhmm,
    parse_date,
    parse_time_on_date,
)

logger = logging.getLogger(__name__)

REASON_BLOCKED = "Date is blocked"
REASON_BOOKED = "Time slot is already booked"
REASON_DAILY_LIMIT = "Daily appointment limit reached"

CANCELLED = "cancelled"
DEFAULT_APPOINTMENT_MINUTES = 30


class TimeSlot(BaseModel):
    """A candidate appointment start time for one day."""
    time: str
    available: bool
    reason: Optional[str] = None
    duration_minutes: Optional[int] = None


def _get(row: Any, *names: str, default: Any = None) -> Any:
    """Read the first present field from an ORM object or a dict."""
    for name in names:
        if isinstance(row, dict):
            if name in row and row[name] is not None:
                return row[name]
        else:
            value = getattr(row, name, None)
            if value is not None:
                return value
    return default


def _same_id(a: Any, b: Any) -> bool:
    return str(a) == str(b)


def rules_for_day(rules: Iterable[Any], lawyer_id: Any, day: date) -> list:
    """Active rules of this lawyer whose weekday matches `day`."""
    dow = day_of_week(day)
    matched = []
    for rule in rules:
        if not _get(rule, "active", default=True):
            continue
        owner = _get(rule, "owner_id", "lawyer_id")
        if owner is not None and not _same_id(owner, lawyer_id):
            continue
        rule_dow = _get(rule, "day_of_week")
        try:
            if int(rule_dow) != dow:
                continue
        except (TypeError, ValueError):
            continue
        matched.append(rule)
    return matched


def is_blocked(
    lawyer_id: Any,
    day: date,
    exceptions: Iterable[Any],
    holidays: Iterable[Any],
    firm_id: Any = None,
) -> bool:
    """True if the lawyer has a blocked exception or the firm a holiday on `day`."""
    for exc in exceptions:
        if not _get(exc, "is_blocked", default=True):
            continue
        owner = _get(exc, "owner_id", "lawyer_id")
        if owner is not None and not _same_id(owner, lawyer_id):
            continue
        if parse_date(_get(exc, "exception_date", "date")) == day:
            return True

    for holiday in holidays:
        holiday_firm = _get(holiday, "firm_id")
        if firm_id is not None and holiday_firm is not None and not _same_id(holiday_firm, firm_id):
            continue
        if parse_date(_get(holiday, "holiday_date", "date")) == day:
            return True

    return False


def _day_appointments(lawyer_id: Any, day: date, appointments: Iterable[Any]) -> list:
    """Non-cancelled appointments of this lawyer on `day`."""
    rows = []
    for apt in appointments:
        if _get(apt, "status") == CANCELLED:
            continue
        owner = _get(apt, "lawyer_id", "owner_id")
        if owner is not None and not _same_id(owner, lawyer_id):
            continue
        apt_day = parse_date(_get(apt, "appointment_date", "date"))
        if apt_day is not None and apt_day != day:
            continue
        rows.append(apt)
    return rows


def _appointment_minutes(apt: Any) -> int:
    try:
        minutes = int(_get(apt, "duration_minutes", default=DEFAULT_APPOINTMENT_MINUTES))
    except (TypeError, ValueError):
        return DEFAULT_APPOINTMENT_MINUTES
    return minutes if minutes > 0 else DEFAULT_APPOINTMENT_MINUTES


def _appointment_intervals(day: date, rows: Iterable[Any], tz_name: str) -> list[tuple[datetime, datetime]]:
    """(start, end) of each appointment row; rows with an unparseable time are left out."""
    intervals = []
    for apt in rows:
        start = parse_time_on_date(day, _get(apt, "appointment_time", "time", "start_time"), tz_name)
        if start is None:
            logger.debug("Skipping appointment with unparseable time: %r", apt)
            continue

        end = parse_time_on_date(day, _get(apt, "end_time"), tz_name)
        if end is None or end <= start:
            end = start + timedelta(minutes=_appointment_minutes(apt))
        intervals.append((start, end))
    return intervals


def _daily_cap(rules: Iterable[Any]) -> Optional[int]:
    caps = [int(_get(r, "max_per_day")) for r in rules if _get(r, "max_per_day") is not None]
    return min(caps) if caps else None


def _overlaps(start: datetime, end: datetime, intervals: list[tuple[datetime, datetime]]) -> bool:
    # Half-open intervals: touching boundaries do not overlap
    return any(start < apt_end and end > apt_start for apt_start, apt_end in intervals)


def _rule_window(rule: Any, day: date, tz_name: str):
    """Return (start, end, duration, buffer) or None if the rule is malformed."""
    start = parse_time_on_date(day, _get(rule, "start_time"), tz_name)
    end = parse_time_on_date(day, _get(rule, "end_time"), tz_name)
    if start is None or end is None or start >= end:
        return None
    try:
        duration = int(_get(rule, "slot_duration_minutes", default=30))
        buffer = int(_get(rule, "buffer_minutes", default=0))
    except (TypeError, ValueError):
        return None
    if duration <= 0 or buffer < 0:
        return None
    return start, end, duration, buffer


def generate_slots(
    lawyer_id: Any,
    day: date,
    rules: Iterable[Any],
    exceptions: Iterable[Any] = (),
    holidays: Iterable[Any] = (),
    appointments: Iterable[Any] = (),
    firm_id: Any = None,
    dedupe: bool = False,
    tz_name: str = DEFAULT_TIMEZONE,
) -> list[TimeSlot]:
    """
    Produce the ordered slot list for `lawyer_id` on `day`.

    - No active rule for the weekday → [].
    - Blocked exception or firm holiday → a single unavailable "blocked" slot.
    - Each rule emits its own sequence: a slot whose end equals the rule end is
      valid; the cursor advances by duration + buffer.
    - Overlap with a non-cancelled appointment → "Time slot is already booked".
    - If the tightest max_per_day among the rules is reached, every slot is
      unavailable with "Daily appointment limit reached".
    - Sorted by "HH:MM". Overlapping rules may repeat a time unless `dedupe`.
    """
    day_rules = rules_for_day(rules, lawyer_id, day)
    if not day_rules:
        return []

    if is_blocked(lawyer_id, day, exceptions, holidays, firm_id=firm_id):
        return [TimeSlot(time="blocked", available=False, reason=REASON_BLOCKED)]

    booked = _day_appointments(lawyer_id, day, appointments)
    intervals = _appointment_intervals(day, booked, tz_name)

    slots: list[TimeSlot] = []
    for rule in day_rules:
        window = _rule_window(rule, day, tz_name)
        if window is None:
            logger.warning(
                "Skipping malformed availability rule %s",
                _get(rule, "id"),
                extra={"lawyer_id": str(lawyer_id)},
            )
            continue
        start, end, duration, buffer = window

        cursor = start
        while cursor + timedelta(minutes=duration) <= end:
            slot_end = cursor + timedelta(minutes=duration)
            if _overlaps(cursor, slot_end, intervals):
                slots.append(TimeSlot(
                    time=format_hhmm(cursor), available=False, reason=REASON_BOOKED, duration_minutes=duration,
                ))
            else:
                slots.append(TimeSlot(time=format_hhmm(cursor), available=True, duration_minutes=duration))
            cursor = slot_end + timedelta(minutes=buffer)

    cap = _daily_cap(day_rules)
    if cap is not None and len(booked) >= cap:
        slots = [
            s.model_copy(update={"available": False, "reason": REASON_DAILY_LIMIT})
            for s in slots
        ]

    if dedupe:
        slots = _dedupe(slots)

    return sorted(slots, key=lambda s: s.time)


def _dedupe(slots: list[TimeSlot]) -> list[TimeSlot]:
    """Collapse repeated times, keeping the unavailable variant if any."""
    by_time: dict[str, TimeSlot] = {}
    for slot in slots:
        kept = by_time.get(slot.time)
        if kept is None or (kept.available and not slot.available):
            by_time[slot.time] = slot
    return list(by_time.values())


def check_slot_conflict(
    lawyer_id: Any,
    day: date,
    start_time: Any,
    duration_minutes: int,
    rules: Iterable[Any],
    exceptions: Iterable[Any] = (),
    holidays: Iterable[Any] = (),
    appointments: Iterable[Any] = (),
    firm_id: Any = None,
    tz_name: str = DEFAULT_TIMEZONE,
) -> Optional[str]:
    """
    Re-check a requested booking against current state.
    Returns the rejection reason, or None if the slot can be booked.
    """
    if is_blocked(lawyer_id, day, exceptions, holidays, firm_id=firm_id):
        return REASON_BLOCKED

    booked = _day_appointments(lawyer_id, day, appointments)

    cap = _daily_cap(rules_for_day(rules, lawyer_id, day))
    if cap is not None and len(booked) >= cap:
        return REASON_DAILY_LIMIT

    start = parse_time_on_date(day, start_time, tz_name)
    if start is None:
        return None
    end = start + timedelta(minutes=duration_minutes)
    if _overlaps(start, end, _appointment_intervals(day, booked, tz_name)):
        return REASON_BOOKED

    return None
