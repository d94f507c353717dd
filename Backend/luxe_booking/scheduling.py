"""
Appointment scheduling engine.

Conflict detection and available-slot generation for a single staff member's
day. Times are minutes from midnight in the business timezone.

Existing bookings occupy ``conflict_duration`` minutes from their start time,
independent of their service's nominal length. The default (60) is
``CONFLICT_DURATION_MINUTES`` in settings.
"""

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import get_settings
from .errors import ValidationError
from .store import fetch_staff, list_active_bookings
from .working_hours import Calendar, WorkingDay, format_hhmm, parse_hhmm

logger = logging.getLogger(__name__)
settings = get_settings()


def get_local_now() -> datetime:
    """Get the current datetime in the business timezone."""
    return datetime.now(ZoneInfo(settings.business_timezone))


@dataclass(frozen=True)
class Slot:
    time: str
    available: bool
    staff_id: int

    def to_dict(self) -> dict:
        return asdict(self)


def overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval intersection; touching ends do not overlap."""
    return start_a < end_b and start_b < end_a


def find_conflict(
    start: int,
    duration: int,
    occupied_starts: Iterable[int],
    conflict_duration: int,
) -> Optional[int]:
    """Return the start of the first occupied block overlapping ``[start, start + duration)``."""
    end = start + duration
    for booked_start in occupied_starts:
        if overlap(start, end, booked_start, booked_start + conflict_duration):
            return booked_start
    return None


def candidate_starts(day: WorkingDay, duration: int, step: int) -> Iterator[int]:
    """Grid start times from the opening minute up to ``end - duration`` inclusive."""
    if not day.is_working:
        return
    cursor = day.start
    while cursor <= day.end - duration:
        yield cursor
        cursor += step


def is_past(day: date, start: int, now: datetime) -> bool:
    """
    A slot is past when its day is before today, or it is today and the
    start minute is not after the current minute.
    """
    today = now.date()
    if day != today:
        return day < today
    return start <= now.hour * 60 + now.minute


def build_slots(
    staff_id: int,
    day: date,
    working_day: WorkingDay,
    duration: int,
    occupied_starts: list[int],
    now: datetime,
    step: int,
    conflict_duration: int,
) -> list[Slot]:
    slots: list[Slot] = []
    for start in candidate_starts(working_day, duration, step):
        if find_conflict(start, duration, occupied_starts, conflict_duration) is not None:
            continue
        if is_past(day, start, now):
            continue
        slots.append(Slot(time=format_hhmm(start), available=True, staff_id=staff_id))
    return slots


def validate_duration(duration: int) -> None:
    if duration is None or duration <= 0:
        raise ValidationError(["duration"], message="Duration must be a positive number of minutes")


async def has_conflict(
    session: AsyncSession,
    staff_id: int,
    day: date,
    start_time: str,
    duration: int,
    exclude_booking_id: Optional[uuid.UUID] = None,
    conflict_duration: Optional[int] = None,
    timeout: Optional[float] = None,
) -> bool:
    """
    Check whether ``[start_time, start_time + duration)`` overlaps any active
    booking for ``staff_id`` on ``day``.

    Args:
        session: Database session
        staff_id: Staff member whose day is checked
        day: Calendar day
        start_time: Candidate start as ``HH:MM``
        duration: Candidate length in minutes
        exclude_booking_id: Booking to ignore (the one being updated)
        conflict_duration: Occupied length of existing bookings; defaults to settings
        timeout: Storage timeout in seconds; defaults to settings

    Returns:
        True on the first overlapping booking found
    """
    validate_duration(duration)
    blocked = settings.conflict_duration_minutes if conflict_duration is None else conflict_duration
    bookings = await list_active_bookings(session, staff_id, day, exclude_booking_id, timeout)
    clash = find_conflict(parse_hhmm(start_time), duration, (parse_hhmm(b.time) for b in bookings), blocked)
    if clash is not None:
        logger.info(
            "Conflict for staff %s on %s: %s+%dmin overlaps booking at %s",
            staff_id,
            day,
            start_time,
            duration,
            format_hhmm(clash),
        )
        return True
    return False


async def generate_slots(
    session: AsyncSession,
    staff_id: int,
    day: date,
    duration: int,
    now: Optional[datetime] = None,
    step: Optional[int] = None,
    conflict_duration: Optional[int] = None,
    timeout: Optional[float] = None,
) -> list[Slot]:
    """
    Available start times for ``staff_id`` on ``day``, ascending.

    Non-working days yield an empty list. Raises NotFoundError when the staff
    member does not exist.
    """
    validate_duration(duration)
    staff = await fetch_staff(session, staff_id, timeout)
    working_day = Calendar.from_json(staff.working_hours).for_date(day)
    if not working_day.is_working:
        return []

    bookings = await list_active_bookings(session, staff_id, day, timeout=timeout)
    return build_slots(
        staff_id=staff_id,
        day=day,
        working_day=working_day,
        duration=duration,
        occupied_starts=[parse_hhmm(b.time) for b in bookings],
        now=now or get_local_now(),
        step=step or settings.slot_step_minutes,
        conflict_duration=settings.conflict_duration_minutes if conflict_duration is None else conflict_duration,
    )
