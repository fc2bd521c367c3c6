"""
Timezone helpers for planning.

Scheduling compares UTC-aware datetimes only. A local date or time of day
means something only together with the owner's IANA timezone, so every
local -> UTC conversion goes through this module.
"""

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UTC = timezone.utc


def now_utc() -> datetime:
    """Current instant, UTC-aware."""
    return datetime.now(UTC)


def is_valid_timezone(name: str) -> bool:
    """Check whether an IANA timezone name can be loaded."""
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def get_user_today(user_timezone: str, now: Optional[datetime] = None) -> date:
    """
    Local calendar date for the user.

    Args:
        user_timezone: IANA name such as "America/Los_Angeles"
        now: Reference instant; the current time when omitted

    Example:
        >>> get_user_today("America/Los_Angeles", datetime(2025, 6, 1, 5, 0, tzinfo=UTC))
        date(2025, 5, 31)  # 22:00 PDT the evening before
    """
    reference = ensure_utc(now) if now else now_utc()
    return reference.astimezone(ZoneInfo(user_timezone)).date()


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize to a UTC-aware datetime.

    Naive values are taken to be UTC already (stored rows and provider
    payloads without offsets). None passes through.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def user_datetime_to_utc(dt: datetime, user_timezone: str) -> datetime:
    """
    Interpret a naive wall-clock datetime in the user's zone and return UTC.

    Example:
        >>> user_datetime_to_utc(datetime(2025, 6, 2, 18, 0), "America/Los_Angeles")
        datetime(2025, 6, 3, 1, 0, tzinfo=timezone.utc)
    """
    return dt.replace(tzinfo=ZoneInfo(user_timezone)).astimezone(UTC)


def local_instant(day: date, time_of_day: time, user_timezone: str) -> datetime:
    """Combine a local date and time of day in the user's zone into a UTC instant."""
    return user_datetime_to_utc(datetime.combine(day, time_of_day), user_timezone)


def to_local_date(dt: datetime, user_timezone: str) -> date:
    """Calendar date of an instant as seen in the user's timezone."""
    return ensure_utc(dt).astimezone(ZoneInfo(user_timezone)).date()


def sunday_weekday(day: date) -> int:
    """Weekday ordinal with Sunday=0 ... Saturday=6."""
    return (day.weekday() + 1) % 7
