from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Booking, BookingStatus
from .store import bounded

REVENUE_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.COMPLETED)


@dataclass(frozen=True)
class BookingStats:
    total_bookings: int
    pending_bookings: int
    confirmed_bookings: int
    today_bookings: int
    revenue_cents: int


async def collect_stats(session: AsyncSession, today: date, timeout: Optional[float] = None) -> BookingStats:
    """Counts and revenue over the whole booking table, read in one statement."""
    stmt = select(
        func.count(),
        func.count().filter(Booking.status == BookingStatus.PENDING),
        func.count().filter(Booking.status == BookingStatus.CONFIRMED),
        func.count().filter(Booking.date == today),
        func.coalesce(
            func.sum(Booking.total_price_cents).filter(Booking.status.in_(REVENUE_STATUSES)),
            0,
        ),
    ).select_from(Booking)

    result = await bounded(session, session.execute(stmt), timeout)
    total, pending, confirmed, today_count, revenue = result.one()
    return BookingStats(
        total_bookings=total,
        pending_bookings=pending,
        confirmed_bookings=confirmed,
        today_bookings=today_count,
        revenue_cents=int(revenue or 0),
    )
