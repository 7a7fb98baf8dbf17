# barberbook/utils/time_window.py
"""
Calendar helpers for a single-timezone business.

All instants are naive datetimes expressed in the business's local time.
"""
import calendar
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from barberbook.config.settings import Settings, get_settings


def parse_hhmm(value: str) -> time:
    """Parse an 'HH:MM' string into a time"""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def business_now(settings: Optional[Settings] = None) -> datetime:
    """Current wall-clock time in the business timezone (naive)"""
    settings = settings or get_settings()
    return datetime.now(ZoneInfo(settings.BUSINESS_TIMEZONE)).replace(tzinfo=None, microsecond=0)


def opening_bounds(day: date, settings: Optional[Settings] = None) -> Tuple[datetime, datetime]:
    """Opening and closing instants for a given day"""
    settings = settings or get_settings()
    return (
        datetime.combine(day, parse_hhmm(settings.BUSINESS_OPEN_TIME)),
        datetime.combine(day, parse_hhmm(settings.BUSINESS_CLOSE_TIME)),
    )


def to_business_time(instant: datetime, settings: Optional[Settings] = None) -> datetime:
    """Offset-aware instants are converted to naive business-local time"""
    if instant.tzinfo is None:
        return instant
    settings = settings or get_settings()
    return instant.astimezone(ZoneInfo(settings.BUSINESS_TIMEZONE)).replace(tzinfo=None)


def is_within_business_hours(instant: datetime, settings: Optional[Settings] = None) -> bool:
    """Opening is inclusive, closing is exclusive"""
    opens_at, closes_at = opening_bounds(instant.date(), settings)
    return opens_at <= instant < closes_at


def generate_slots(
        day: date,
        interval_minutes: Optional[int] = None,
        settings: Optional[Settings] = None
) -> List[datetime]:
    """Candidate slot starts for a day, from opening up to (not including) closing"""
    settings = settings or get_settings()
    step = timedelta(minutes=interval_minutes or settings.SLOT_INTERVAL_MINUTES)
    current, closes_at = opening_bounds(day, settings)

    slots = []
    while current < closes_at:
        slots.append(current)
        current += step
    return slots


def past_cutoff(
        now: Optional[datetime] = None,
        grace_minutes: Optional[int] = None,
        settings: Optional[Settings] = None
) -> datetime:
    """Earliest instant that still counts as not yet gone by"""
    settings = settings or get_settings()
    now = now or business_now(settings)
    if grace_minutes is None:
        grace_minutes = settings.BOOKING_GRACE_MINUTES
    return now - timedelta(minutes=grace_minutes)


def is_in_past(
        instant: datetime,
        now: Optional[datetime] = None,
        grace_minutes: Optional[int] = None,
        settings: Optional[Settings] = None
) -> bool:
    """
    True when ``instant`` is earlier than ``now`` minus the grace window.

    The grace window keeps a booking made a few minutes into the current slot
    from being rejected.
    """
    return instant < past_cutoff(now, grace_minutes, settings)


def month_window(year: int, month: int) -> Tuple[date, date]:
    """First and last day of a calendar month"""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def day_of_week(day: date) -> int:
    """Weekday number with 0=Sunday and 6=Saturday"""
    return (day.weekday() + 1) % 7


def dates_matching_weekday(start: date, end: date, weekday: int) -> List[date]:
    """All dates in [start, end] falling on ``weekday`` (0=Sunday, 6=Saturday)"""
    offset = (weekday - day_of_week(start)) % 7
    current = start + timedelta(days=offset)

    matches = []
    while current <= end:
        matches.append(current)
        current += timedelta(days=7)
    return matches


def add_one_month(day: date, anchor_day: Optional[int] = None) -> date:
    """
    Next month on ``anchor_day`` (defaults to ``day.day``), clamped to the
    last day of that month. Passing the plan's start day of month keeps a
    31st from drifting to the 28th after February.
    """
    year = day.year + (1 if day.month == 12 else 0)
    month = 1 if day.month == 12 else day.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor_day or day.day, last_day))
