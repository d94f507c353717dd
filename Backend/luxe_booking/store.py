"""
Booking record store.

Query and write contracts the scheduling engine relies on. Every storage round
trip goes through ``bounded`` so it is limited by a caller-supplied timeout and
surfaces as ``TransientError`` when storage is slow or unreachable.

Check-then-insert for a staff member's day is serialised with ``slot_lock``;
the partial unique index on ``bookings(staff_id, date, time)`` covers the
multi-process case and its violation is reported as ``SlotConflictError``.
"""

import asyncio
import logging
import math
import uuid
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Optional, TypeVar

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import get_settings
from .errors import NotFoundError, SlotConflictError, TransientError
from .models import ACTIVE_STATUSES, Booking, BookingStatus, Service, Staff, StaffService

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")

DATE_FILTERS = ("all", "today", "upcoming", "past")


# ============================================================================
# TIMEOUTS
# ============================================================================

async def bounded(session: AsyncSession, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """
    Await a storage operation with a deadline.

    On timeout or a connection-level failure the session is rolled back so
    nothing from the interrupted unit of work is committed.
    """
    limit = settings.storage_timeout_seconds if timeout is None else timeout
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError as exc:
        logger.warning("Storage call exceeded %.2fs; rolling back", limit)
        await session.rollback()
        raise TransientError(
            "Storage request timed out", details={"timeout_seconds": limit}
        ) from exc
    except (OperationalError, InterfaceError) as exc:
        logger.warning("Storage unavailable: %s", exc)
        await session.rollback()
        raise TransientError("Storage unavailable") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            await session.rollback()
            raise TransientError("Storage connection lost") from exc
        raise


# ============================================================================
# SERIALISATION OF CHECK-AND-WRITE
# ============================================================================

_slot_locks: "weakref.WeakValueDictionary[tuple[int, date], asyncio.Lock]" = weakref.WeakValueDictionary()


@asynccontextmanager
async def slot_lock(staff_id: int, day: date):
    """Serialise conflict-check-and-write for one staff member's day."""
    key = (staff_id, day)
    lock = _slot_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _slot_locks[key] = lock
    async with lock:
        yield


@asynccontextmanager
async def slot_locks(*keys: tuple[int, date]):
    """Acquire several day locks in a stable order (used when a booking moves)."""
    ordered = sorted(set(keys))
    if not ordered:
        yield
        return
    head, rest = ordered[0], ordered[1:]
    async with slot_lock(*head):
        async with slot_locks(*rest):
            yield


# ============================================================================
# LOOKUPS
# ============================================================================

async def fetch_service(session: AsyncSession, service_id: int, timeout: Optional[float] = None) -> Service:
    result = await bounded(
        session,
        session.execute(select(Service).where(Service.id == service_id, Service.active.is_(True))),
        timeout,
    )
    service = result.scalar_one_or_none()
    if not service:
        raise NotFoundError("Service not found", details={"service_id": service_id})
    return service


async def fetch_staff(session: AsyncSession, staff_id: int, timeout: Optional[float] = None) -> Staff:
    result = await bounded(
        session,
        session.execute(select(Staff).where(Staff.id == staff_id, Staff.active.is_(True))),
        timeout,
    )
    staff = result.scalar_one_or_none()
    if not staff:
        raise NotFoundError("Staff member not found", details={"staff_id": staff_id})
    return staff


async def fetch_staff_service_ids(
    session: AsyncSession, staff_id: int, timeout: Optional[float] = None
) -> set[int]:
    result = await bounded(
        session,
        session.execute(select(StaffService.service_id).where(StaffService.staff_id == staff_id)),
        timeout,
    )
    return set(result.scalars().all())


async def fetch_booking(
    session: AsyncSession, booking_id: uuid.UUID, timeout: Optional[float] = None
) -> Booking:
    result = await bounded(session, session.execute(select(Booking).where(Booking.id == booking_id)), timeout)
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found", details={"booking_id": str(booking_id)})
    return booking


async def fetch_booking_details(
    session: AsyncSession, booking_id: uuid.UUID, timeout: Optional[float] = None
) -> tuple[Booking, Optional[Service], Optional[Staff]]:
    """Booking plus its service and staff rows (either may have been deleted by admins)."""
    result = await bounded(
        session,
        session.execute(
            select(Booking, Service, Staff)
            .outerjoin(Service, Service.id == Booking.service_id)
            .outerjoin(Staff, Staff.id == Booking.staff_id)
            .where(Booking.id == booking_id)
        ),
        timeout,
    )
    row = result.one_or_none()
    if not row:
        raise NotFoundError("Booking not found", details={"booking_id": str(booking_id)})
    return row[0], row[1], row[2]


async def list_active_bookings(
    session: AsyncSession,
    staff_id: int,
    day: date,
    exclude_booking_id: Optional[uuid.UUID] = None,
    timeout: Optional[float] = None,
) -> list[Booking]:
    stmt = select(Booking).where(
        Booking.staff_id == staff_id,
        Booking.date == day,
        Booking.status.in_(ACTIVE_STATUSES),
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    result = await bounded(session, session.execute(stmt.order_by(Booking.time)), timeout)
    return list(result.scalars().all())


# ============================================================================
# LISTING
# ============================================================================

def escape_like(text: str) -> str:
    """Make ``%`` and ``_`` in user search text match literally under ``escape="\\"``."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class BookingQuery:
    """Immutable listing filter, built once per request."""
    status: Optional[BookingStatus] = None
    date_filter: str = "all"
    staff_id: Optional[int] = None
    search: Optional[str] = None
    page: int = 1
    limit: int = 50

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def conditions(self, today: date) -> list:
        conditions = []
        if self.status is not None:
            conditions.append(Booking.status == self.status)
        # Booking.date holds calendar days, so [today, today + 1 day) is equality.
        if self.date_filter == "today":
            conditions.append(Booking.date == today)
        elif self.date_filter == "upcoming":
            conditions.append(Booking.date >= today)
        elif self.date_filter == "past":
            conditions.append(Booking.date < today)
        if self.staff_id is not None:
            conditions.append(Booking.staff_id == self.staff_id)
        if self.search:
            pattern = f"%{escape_like(self.search.strip())}%"
            conditions.append(
                or_(
                    Booking.customer_name.ilike(pattern, escape="\\"),
                    Booking.customer_email.ilike(pattern, escape="\\"),
                    Booking.customer_phone.ilike(pattern, escape="\\"),
                )
            )
        return conditions


@dataclass(frozen=True)
class BookingPage:
    rows: list[tuple[Booking, Optional[Service], Optional[Staff]]]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


async def list_bookings(
    session: AsyncSession,
    query: BookingQuery,
    today: date,
    timeout: Optional[float] = None,
) -> BookingPage:
    conditions = query.conditions(today)

    count_result = await bounded(
        session,
        session.execute(select(func.count()).select_from(Booking).where(*conditions)),
        timeout,
    )
    total = count_result.scalar_one()

    result = await bounded(
        session,
        session.execute(
            select(Booking, Service, Staff)
            .outerjoin(Service, Service.id == Booking.service_id)
            .outerjoin(Staff, Staff.id == Booking.staff_id)
            .where(*conditions)
            .order_by(Booking.date, Booking.time)
            .offset(query.offset)
            .limit(query.limit)
        ),
        timeout,
    )
    rows = [(row[0], row[1], row[2]) for row in result.all()]
    return BookingPage(rows=rows, total=total, page=query.page, limit=query.limit)


# ============================================================================
# WRITES
# ============================================================================

async def commit(session: AsyncSession, booking: Booking, timeout: Optional[float] = None) -> Booking:
    """
    Commit pending changes to ``booking`` and reload server-side columns.

    A unique-index violation means another active booking took the same start
    time first.
    """
    # Captured up front: a rollback expires the instance.
    slot = {"staff_id": booking.staff_id, "date": booking.date.isoformat(), "time": booking.time}
    try:
        await bounded(session, session.commit(), timeout)
    except IntegrityError as exc:
        await session.rollback()
        logger.warning("Active slot already taken: %s", slot)
        raise SlotConflictError(details=slot) from exc
    await bounded(session, session.refresh(booking), timeout)
    return booking


async def insert_booking(session: AsyncSession, booking: Booking, timeout: Optional[float] = None) -> Booking:
    session.add(booking)
    return await commit(session, booking, timeout)


async def delete_booking(session: AsyncSession, booking: Booking, timeout: Optional[float] = None) -> None:
    await bounded(session, session.delete(booking), timeout)
    await bounded(session, session.commit(), timeout)


async def mark_confirmation_sent(
    session: AsyncSession, booking_id: uuid.UUID, timeout: Optional[float] = None
) -> None:
    """Set ``confirmation_sent`` with a column update, leaving loaded instances untouched."""
    await bounded(
        session,
        session.execute(update(Booking).where(Booking.id == booking_id).values(confirmation_sent=True)),
        timeout,
    )
    await bounded(session, session.commit(), timeout)
