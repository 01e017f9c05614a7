"""
Clock helpers for reminders and the timetable.

Weekday index: Monday..Friday map to 1..5. Weekends map to 1 so the
timetable always has a "today" to show.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta
from enum import Enum

DEFAULT_NOTIF_TIME = (8, 0)


class TimeStatus(str, Enum):
    """Where the current moment sits relative to a class slot."""

    FINISHED = "finished"
    ONGOING = "ongoing"
    UPCOMING = "upcoming"
    NONE = "none"


def weekday_index(moment: datetime) -> int:
    """1..5 for Monday..Friday, 1 on weekends."""
    iso = moment.isoweekday()
    return iso if 1 <= iso <= 5 else 1


def day_key(moment: datetime) -> str:
    """Calendar day as YYYY-MM-DD."""
    return moment.strftime("%Y-%m-%d")


def _parse_hhmm(text: str) -> tuple[int, int] | None:
    parts = text.strip().split(":")
    if len(parts) != 2:
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    return hour, minute


def parse_notif_time(pref: object, default: tuple[int, int] = DEFAULT_NOTIF_TIME) -> tuple[int, int]:
    """
    Read an "HH:MM" reminder preference.

    Hours are clamped to 0..23 and minutes to 0..59; anything unparseable
    yields ``default``.
    """
    if not isinstance(pref, str):
        return default
    parsed = _parse_hhmm(pref)
    if parsed is None:
        return default
    hour, minute = parsed
    return max(0, min(23, hour)), max(0, min(59, minute))


def is_valid_notif_time(pref: str) -> bool:
    parsed = _parse_hhmm(pref)
    return parsed is not None and 0 <= parsed[0] <= 23 and 0 <= parsed[1] <= 59


def format_notif_time(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def next_fire_time(now: datetime, hour: int, minute: int) -> datetime:
    """Today at hour:minute, or tomorrow if that moment is not in the future."""
    first = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if first <= now:
        first += timedelta(days=1)
    return first


def parse_time_range(jam: str) -> tuple[time, time] | None:
    """Parse "HH:MM-HH:MM"; None when malformed."""
    if not jam or not isinstance(jam, str):
        return None
    parts = [p.strip() for p in jam.split("-")]
    if len(parts) < 2:
        return None

    bounds = []
    for part in parts[:2]:
        parsed = _parse_hhmm(part)
        if parsed is None or not (0 <= parsed[0] <= 23 and 0 <= parsed[1] <= 59):
            return None
        bounds.append(time(parsed[0], parsed[1]))
    return bounds[0], bounds[1]


def time_status(jam: str, day_index: int, now: datetime | None = None) -> TimeStatus:
    """
    Badge for a timetable slot.

    Only slots on today's weekday index get a status; every other day, and
    any malformed range, yields NONE.
    """
    now = now or datetime.now()
    if day_index != weekday_index(now):
        return TimeStatus.NONE

    bounds = parse_time_range(jam)
    if bounds is None:
        return TimeStatus.NONE

    start = datetime.combine(now.date(), bounds[0])
    end = datetime.combine(now.date(), bounds[1])

    if now > end:
        return TimeStatus.FINISHED
    if start <= now <= end:
        return TimeStatus.ONGOING
    return TimeStatus.UPCOMING
