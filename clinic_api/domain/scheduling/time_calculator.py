"""Time parsing and slot arithmetic for doctor schedules"""

from datetime import date, datetime

from ...models import DayOfWeek

# date.weekday(): Monday == 0
_WEEKDAYS = (
    DayOfWeek.MONDAY,
    DayOfWeek.TUESDAY,
    DayOfWeek.WEDNESDAY,
    DayOfWeek.THURSDAY,
    DayOfWeek.FRIDAY,
    DayOfWeek.SATURDAY,
    DayOfWeek.SUNDAY,
)

# Ordering used when listing a doctor's week
WEEKDAY_ORDER = {day: index for index, day in enumerate(_WEEKDAYS)}


def day_of_week(value: date) -> DayOfWeek:
    """Map a calendar date to its weekday label"""
    return _WEEKDAYS[value.weekday()]


def to_minutes(hhmm: str) -> int:
    """"09:30" -> 570"""
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def format_minutes(total: int) -> str:
    """570 -> "09:30" """
    return f"{total // 60:02d}:{total % 60:02d}"


def generate_slot_times(start_time: str, end_time: str, slot_duration: int) -> list[str]:
    """
    Step from start_time by slot_duration minutes, stopping before end_time.

    The window does not have to divide evenly: a 09:00-10:45 window with 30 minute
    slots yields 09:00, 09:30, 10:00, 10:30.
    """
    if slot_duration <= 0:
        raise ValueError("slot_duration must be positive")

    start = to_minutes(start_time)
    end = to_minutes(end_time)
    return [format_minutes(minute) for minute in range(start, end, slot_duration)]


def is_within_window(time_of_day: str, start_time: str, end_time: str) -> bool:
    """True when start_time <= time_of_day < end_time"""
    return to_minutes(start_time) <= to_minutes(time_of_day) < to_minutes(end_time)


def is_on_grid(time_of_day: str, start_time: str, slot_duration: int) -> bool:
    """True when time_of_day is reachable from start_time in slot_duration steps"""
    offset = to_minutes(time_of_day) - to_minutes(start_time)
    return offset >= 0 and offset % slot_duration == 0


def is_slot_in_past(slot_date: date, time_of_day: str, now: datetime) -> bool:
    """A slot starting at or before the current minute can no longer be booked"""
    if slot_date != now.date():
        return slot_date < now.date()
    return to_minutes(time_of_day) <= now.hour * 60 + now.minute
