"""
Date and time normalisation for scheduling.

Availability rules and appointments arrive with times as bare "HH:mm" /
"HH:mm:ss" strings, `datetime.time` objects, or full ISO timestamps.
Everything is normalised to a naive wall-clock datetime on the target date
in the firm timezone before comparison.
"""
from datetime import date, datetime, time, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from dateutil.parser import isoparse

DEFAULT_TIMEZONE = "Asia/Kolkata"

DateLike = Union[date, datetime, str]
TimeLike = Union[time, datetime, str]


def day_of_week(day: date) -> int:
    """Weekday index with 0=Sunday ... 6=Saturday (the stored rule convention)."""
    return (day.weekday() + 1) % 7


def parse_date(value: Optional[DateLike]) -> Optional[date]:
    """Parse a date, datetime, 'YYYY-MM-DD' or ISO timestamp into a date. None if malformed."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return isoparse(value.strip()).date()
    except (ValueError, OverflowError):
        return None


def parse_clock_time(value: Optional[TimeLike]) -> Optional[time]:
    """Parse 'HH:mm' / 'HH:mm:ss' / time / datetime into a naive time. None if malformed."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.time().replace(tzinfo=None)
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if "T" in raw:
        try:
            return isoparse(raw).time().replace(tzinfo=None)
        except (ValueError, OverflowError):
            return None
    try:
        return time.fromisoformat(raw)
    except ValueError:
        return None


def parse_time_on_date(
    day: date,
    value: Optional[TimeLike],
    tz_name: str = DEFAULT_TIMEZONE,
) -> Optional[datetime]:
    """
    Resolve a time value to a naive wall-clock datetime on `day`.

    Full timestamps contribute only their clock time (after conversion to
    `tz_name` when they carry an offset); their own date is ignored, so a
    rule stored as a timestamp applies to every matching weekday. Returns
    None for missing or malformed input.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return datetime.combine(day, _to_local_naive(value, tz_name).time())

    if isinstance(value, str) and "T" in value.strip():
        try:
            parsed = isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
        return datetime.combine(day, _to_local_naive(parsed, tz_name).time())

    clock = parse_clock_time(value)
    if clock is None:
        return None
    return datetime.combine(day, clock)


def _to_local_naive(value: datetime, tz_name: str) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(ZoneInfo(tz_name))
    return value.replace(tzinfo=None)


def format_hhmm(value: datetime) -> str:
    return value.strftime("%H:%M")


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def today_in_timezone(tz_name: str = DEFAULT_TIMEZONE) -> date:
    return datetime.now(ZoneInfo(tz_name)).date()
