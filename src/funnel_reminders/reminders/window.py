"""
Window evaluation on absolute instants.

Minutes-until-start is ``round((start - now) / 60s)`` with Python's round
(half to even), applied uniformly so an event sitting exactly on a boundary is
always decided the same way. Time zones never enter this computation; they
only matter for local-day horizons, which are converted to UTC bounds first.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

import pytz

from funnel_reminders.core.models import CalendarEvent, ReminderWindow

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_aware(value: datetime, name: str) -> None:
    if value.tzinfo is None:
        raise ValueError(f"{name} must be timezone-aware, got naive {value!r}")


def minutes_until(start: datetime, now: datetime) -> int:
    _require_aware(start, "start")
    _require_aware(now, "now")
    return round((start - now).total_seconds() / 60)


def is_eligible(event: CalendarEvent, window: ReminderWindow, now: datetime) -> bool:
    """True when the event's minutes-until-start lies inside the inclusive window."""
    if event.all_day:
        return False
    diff = minutes_until(event.start, now)
    return window.min_offset_minutes <= diff <= window.max_offset_minutes


def fetch_bounds(window: ReminderWindow, now: datetime) -> tuple[datetime, datetime]:
    """
    Calendar query bounds for a window kind.

    Padded by one minute on each side so boundary rounding is decided by
    is_eligible rather than by the provider's timeMin/timeMax filtering.
    """
    _require_aware(now, "now")
    return (
        now + timedelta(minutes=window.min_offset_minutes - 1),
        now + timedelta(minutes=window.max_offset_minutes + 1),
    )


def local_day_bounds(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """[00:00, next day 00:00) of ``day`` in ``tz_name``, as UTC instants."""
    tz = pytz.timezone(tz_name)
    start = tz.localize(datetime.combine(day, time.min))
    end = tz.localize(datetime.combine(day + timedelta(days=1), time.min))
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_today(now: datetime, tz_name: str) -> date:
    _require_aware(now, "now")
    return now.astimezone(pytz.timezone(tz_name)).date()


def in_local_day(event: CalendarEvent, bounds: tuple[datetime, datetime]) -> bool:
    """Timed events starting inside the local day. All-day events never match."""
    if event.all_day:
        return False
    start, end = bounds
    return start <= event.start < end
