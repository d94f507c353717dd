"""
Booking API routes.

Thin HTTP layer over the lifecycle, scheduling and stats modules. Handlers
raise ``BookingError`` subclasses; ``main`` turns them into error responses.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from . import lifecycle
from .core.config import get_settings
from .core.db import get_session
from .errors import NotFoundError, ValidationError
from .models import BookingStatus
from .scheduling import generate_slots, get_local_now
from .schemas import (
    BookingCreateRequest,
    BookingListResponse,
    BookingResponse,
    BookingUpdateRequest,
    MessageResponse,
    SlotResponse,
    StatsResponse,
    booking_to_response,
    cents_to_dollars,
)
from .stats import collect_stats
from .store import DATE_FILTERS, BookingQuery, fetch_booking_details, list_bookings

settings = get_settings()
router = APIRouter(prefix="/bookings", tags=["bookings"])


def parse_booking_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise NotFoundError("Booking not found", details={"booking_id": raw})


def build_booking_query(
    status_filter: str,
    date_filter: str,
    staff_id: Optional[int],
    search: Optional[str],
    page: int,
    limit: Optional[int],
) -> BookingQuery:
    errors = []
    booking_status = None
    if status_filter and status_filter != "all":
        try:
            booking_status = BookingStatus(status_filter)
        except ValueError:
            errors.append("status")
    if date_filter not in DATE_FILTERS:
        errors.append("date")
    if page < 1:
        errors.append("page")
    if limit is not None and limit < 1:
        errors.append("limit")
    if errors:
        raise ValidationError(errors)

    page_size = min(limit or settings.page_size_default, settings.page_size_max)
    return BookingQuery(
        status=booking_status,
        date_filter=date_filter,
        staff_id=staff_id,
        search=search.strip() if search and search.strip() else None,
        page=page,
        limit=page_size,
    )


@router.get("", response_model=BookingListResponse)
async def get_bookings(
    status_filter: str = Query("all", alias="status"),
    date_filter: str = Query("all", alias="date"),
    staff_id: Optional[int] = Query(None, alias="staffId"),
    search: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    session: AsyncSession = Depends(get_session),
):
    query = build_booking_query(status_filter, date_filter, staff_id, search, page, limit)
    result = await list_bookings(session, query, get_local_now().date())
    return BookingListResponse(
        bookings=[booking_to_response(*row) for row in result.rows],
        total_pages=result.total_pages,
        current_page=result.page,
        total=result.total,
    )


@router.get("/stats", response_model=StatsResponse)
async def get_booking_stats(session: AsyncSession = Depends(get_session)):
    stats = await collect_stats(session, get_local_now().date())
    return StatsResponse(
        total_bookings=stats.total_bookings,
        pending_bookings=stats.pending_bookings,
        confirmed_bookings=stats.confirmed_bookings,
        today_bookings=stats.today_bookings,
        revenue=cents_to_dollars(stats.revenue_cents),
    )


@router.get("/available-slots/{staff_id}/{date}", response_model=list[SlotResponse])
async def get_available_slots(
    staff_id: int,
    date: str,
    duration: Optional[int] = None,
    session: AsyncSession = Depends(get_session),
):
    day = lifecycle.parse_iso_day(date)
    if day is None:
        raise ValidationError(["date"])
    slots = await generate_slots(
        session,
        staff_id,
        day,
        settings.default_slot_duration_minutes if duration is None else duration,
    )
    return [SlotResponse(time=slot.time, available=slot.available, staff_id=slot.staff_id) for slot in slots]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: str, session: AsyncSession = Depends(get_session)):
    booking, service, staff = await fetch_booking_details(session, parse_booking_id(booking_id))
    return booking_to_response(booking, service, staff)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(payload: BookingCreateRequest, session: AsyncSession = Depends(get_session)):
    outcome = await lifecycle.create_booking(session, payload)
    return booking_to_response(outcome.booking, outcome.service, outcome.staff)


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: str,
    payload: BookingUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    outcome = await lifecycle.update_booking(session, parse_booking_id(booking_id), payload)
    return booking_to_response(outcome.booking, outcome.service, outcome.staff)


@router.delete("/{booking_id}", response_model=MessageResponse)
async def delete_booking(booking_id: str, session: AsyncSession = Depends(get_session)):
    await lifecycle.delete_booking(session, parse_booking_id(booking_id))
    return MessageResponse(message="Booking deleted successfully")
