"""
Staff working-hours calendar.

A staff member's calendar is stored as a JSON object keyed by lowercase
weekday name, each entry ``{"start": "HH:MM", "end": "HH:MM", "isWorking": bool}``.
This module turns that JSON into typed values and answers "when does this
person work on this date".
"""

from dataclasses import dataclass
from datetime import date

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def parse_hhmm(value: str) -> int:
    """Convert ``HH:MM`` to minutes from midnight. Raises ValueError when malformed."""
    if not isinstance(value, str):
        raise ValueError(f"Invalid time: {value!r}")
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        raise ValueError(f"Invalid time: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time: {value!r}")
    return hour * 60 + minute


def format_hhmm(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


@dataclass(frozen=True)
class WorkingDay:
    start: int  # minutes from midnight
    end: int
    is_working: bool

    @classmethod
    def from_json(cls, raw: dict | None) -> "WorkingDay":
        if not raw or not raw.get("isWorking"):
            return cls(start=0, end=0, is_working=False)
        return cls(
            start=parse_hhmm(raw.get("start", "")),
            end=parse_hhmm(raw.get("end", "")),
            is_working=True,
        )

    def to_json(self) -> dict:
        return {
            "start": format_hhmm(self.start),
            "end": format_hhmm(self.end),
            "isWorking": self.is_working,
        }

    def contains(self, start: int, duration: int) -> bool:
        """True when ``[start, start + duration)`` lies inside the working window."""
        return self.is_working and self.start <= start and start + duration <= self.end


@dataclass(frozen=True)
class Calendar:
    days: dict[str, WorkingDay]

    @classmethod
    def from_json(cls, raw: dict | None) -> "Calendar":
        raw = raw or {}
        return cls(days={name: WorkingDay.from_json(raw.get(name)) for name in WEEKDAYS})

    def to_json(self) -> dict:
        return {name: self.days[name].to_json() for name in WEEKDAYS}

    def for_date(self, day: date) -> WorkingDay:
        return self.days[weekday_name(day)]


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def build_calendar(
    start: str = "09:00",
    end: str = "18:00",
    days_off: tuple[str, ...] = ("sunday",),
) -> dict:
    """Build calendar JSON with the same hours on every working day."""
    return {
        name: {"start": start, "end": end, "isWorking": name not in days_off}
        for name in WEEKDAYS
    }
