from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from course_allocation.core.exceptions import MalformedTimeSlotError

WEEKDAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
_DAY_LOOKUP = {day.lower(): day for day in WEEKDAYS}

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
# Legacy course records store "9:30 AM" style times.
MERIDIEM_TIME_PATTERN = re.compile(r"^(\d{1,2}):([0-5]\d)\s*([AaPp][Mm])$")


@dataclass(frozen=True)
class Interval:
    """A weekly time slot normalised to minutes-of-day."""

    day: str
    start: int
    end: int
    room: str | None = None

    def to_dict(self) -> dict:
        payload = {
            "day": self.day,
            "start_time": format_minutes(self.start),
            "end_time": format_minutes(self.end),
        }
        if self.room:
            payload["room"] = self.room
        return payload


def parse_time_to_minutes(value: object) -> int:
    if not isinstance(value, str):
        raise MalformedTimeSlotError(f"Time must be a string, got {type(value).__name__}")
    text = value.strip()
    match = TIME_PATTERN.match(text)
    if match:
        return int(match.group(1)) * 60 + int(match.group(2))
    match = MERIDIEM_TIME_PATTERN.match(text)
    if match:
        hours = int(match.group(1))
        if hours < 1 or hours > 12:
            raise MalformedTimeSlotError(f"Invalid time value '{value}'")
        period = match.group(3).upper()
        if period == "PM" and hours != 12:
            hours += 12
        if period == "AM" and hours == 12:
            hours = 0
        return hours * 60 + int(match.group(2))
    raise MalformedTimeSlotError(f"Invalid time value '{value}', expected HH:MM")


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_day(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedTimeSlotError("Time slot is missing a day")
    day = _DAY_LOOKUP.get(value.strip().lower())
    if day is None:
        raise MalformedTimeSlotError(f"Invalid day value '{value}'")
    return day


def _read_field(slot: object, *names: str) -> object:
    for name in names:
        if isinstance(slot, Mapping):
            if name in slot:
                return slot[name]
        elif hasattr(slot, name):
            return getattr(slot, name)
    return None


def normalize_slot(slot: object) -> Interval:
    """Build an Interval from a stored dict or a TimeSlot schema.

    Raises MalformedTimeSlotError instead of guessing: a slot that cannot be read
    must never compare as conflict free.
    """
    if isinstance(slot, Interval):
        return slot
    if slot is None:
        raise MalformedTimeSlotError("Time slot is empty")

    day = normalize_day(_read_field(slot, "day"))
    start = parse_time_to_minutes(_read_field(slot, "start_time", "startTime"))
    end = parse_time_to_minutes(_read_field(slot, "end_time", "endTime"))
    if start >= end:
        raise MalformedTimeSlotError(
            f"Time slot on {day} must end after it starts",
            slot={"day": day, "start_time": format_minutes(start), "end_time": format_minutes(end)},
        )
    room = _read_field(slot, "room")
    return Interval(day=day, start=start, end=end, room=str(room) if room else None)


def normalize_schedule(slots: Iterable[object] | None) -> list[Interval]:
    if slots is None:
        return []
    if isinstance(slots, (str, bytes, Mapping)):
        raise MalformedTimeSlotError("Schedule must be a list of time slots")
    return [normalize_slot(slot) for slot in slots]


def overlaps(slot_a: object, slot_b: object) -> bool:
    """Half-open overlap: slots that only touch at an endpoint do not overlap."""
    a = normalize_slot(slot_a)
    b = normalize_slot(slot_b)
    if a.day != b.day:
        return False
    return a.start < b.end and b.start < a.end
