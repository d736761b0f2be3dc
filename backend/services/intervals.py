from dataclasses import dataclass
from datetime import date, time
from enum import Enum

from backend.errors import ValidationError


class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def of(cls, value: date) -> "Weekday":
        return list(cls)[value.weekday()]


@dataclass(frozen=True)
class TimeInterval:
    day: Weekday
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError("End time must be after start time.", field="end_time")


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """Half-open overlap test: 10:00-11:00 and 11:00-12:00 do not overlap."""
    return a.day == b.day and a.start < b.end and a.end > b.start


def parse_clock(value: str | time, *, field: str | None = None) -> time:
    """Parse `HH:MM` or `HH:MM:SS` into a `time`."""
    if isinstance(value, time):
        return value.replace(microsecond=0)
    parts = (value or "").strip().split(":")
    if len(parts) not in (2, 3):
        raise ValidationError(f"Invalid time value: {value!r}.", field=field)
    try:
        hh, mm = int(parts[0]), int(parts[1])
        ss = int(parts[2]) if len(parts) == 3 else 0
        return time(hh, mm, ss)
    except ValueError:
        raise ValidationError(f"Invalid time value: {value!r}.", field=field)


def hms(value: time) -> str:
    return value.strftime("%H:%M:%S")


def build_interval(day: Weekday | str, start: str | time, end: str | time) -> TimeInterval:
    try:
        weekday = Weekday(day)
    except ValueError:
        raise ValidationError(f"Invalid day: {day!r}.", field="day")
    return TimeInterval(
        weekday,
        parse_clock(start, field="start_time"),
        parse_clock(end, field="end_time"),
    )
