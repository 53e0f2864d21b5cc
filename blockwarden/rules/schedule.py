"""Time-window and weekday evaluation for schedules."""

from datetime import datetime

from blockwarden.models import Schedule

MINUTES_PER_DAY = 24 * 60

WEEKDAY_NAMES = {
    1: "sun",
    2: "mon",
    3: "tue",
    4: "wed",
    5: "thu",
    6: "fri",
    7: "sat",
}


def weekday_of(at: datetime) -> int:
    """Weekday number of a timestamp, 1 = Sunday ... 7 = Saturday."""
    # isoweekday(): Monday=1 ... Sunday=7
    return at.isoweekday() % 7 + 1


def minute_of_day(at: datetime) -> int:
    return at.hour * 60 + at.minute


def window_contains(start: int, end: int, minute: int) -> bool:
    """Check whether a minute of day falls inside a [start, end) window.

    An end before the start wraps past midnight (22:00-06:00). Equal bounds
    describe a zero-width window that never contains anything.
    """
    if end > start:
        return start <= minute < end
    if end < start:
        return minute >= start or minute < end
    return False


def is_schedule_active(schedule: Schedule, at: datetime) -> bool:
    """Check if a schedule is enforcing at the given instant."""
    if not schedule.is_active or not schedule.weekdays:
        return False
    if weekday_of(at) not in schedule.weekdays:
        return False
    return window_contains(schedule.start_minute, schedule.end_minute, minute_of_day(at))


def parse_clock(value: str) -> int:
    """Convert "HH:MM" to minutes after midnight."""
    hours, _, minutes = value.partition(":")
    result = int(hours) * 60 + int(minutes or 0)
    if not 0 <= result < MINUTES_PER_DAY:
        raise ValueError(f"time out of range: {value}")
    return result


def format_clock(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"


def describe_schedule(schedule: Schedule) -> str:
    """Short human-readable summary, e.g. "mon,tue 22:00-06:00"."""
    days = ",".join(WEEKDAY_NAMES[day] for day in sorted(schedule.weekdays)) or "never"
    return f"{days} {format_clock(schedule.start_minute)}-{format_clock(schedule.end_minute)}"
