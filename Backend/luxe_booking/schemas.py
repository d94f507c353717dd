"""
Request and response bodies for the booking API.

JSON uses camelCase keys (``serviceId``, ``customerEmail``, ``totalPrice``);
Python attributes stay snake_case. Request models are deliberately permissive
so that missing or malformed fields are collected by the lifecycle validators
and reported together as one 400.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import Booking, BookingStatus, PaymentStatus, Service, ServiceCategory, Staff


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# REQUEST MODELS
# ============================================================================

class BookingCreateRequest(CamelModel):
    """Request body for creating a booking."""
    service_id: Optional[int] = None
    staff_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    date: Optional[str] = Field(default=None, description="ISO 8601 date; any time-of-day part is dropped")
    time: Optional[str] = Field(default=None, description="Start time as HH:MM")
    notes: Optional[str] = None


class BookingUpdateRequest(CamelModel):
    """Partial update. Unset fields are left untouched; price and timestamps are not writable."""
    service_id: Optional[int] = None
    staff_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = None
    confirmation_sent: Optional[bool] = None
    reminder_sent: Optional[bool] = None


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class ServiceSummary(CamelModel):
    id: int
    name: str
    price: float
    duration: int
    category: ServiceCategory


class StaffSummary(CamelModel):
    id: int
    name: str
    title: str


class BookingResponse(CamelModel):
    id: uuid.UUID
    service_id: int
    staff_id: int
    service: Optional[ServiceSummary] = None
    staff: Optional[StaffSummary] = None
    customer_name: str
    customer_email: str
    customer_phone: str
    date: date
    time: str
    status: BookingStatus
    payment_status: PaymentStatus
    total_price: float
    notes: Optional[str] = None
    confirmation_sent: bool
    reminder_sent: bool
    created_at: datetime
    updated_at: datetime


class BookingListResponse(CamelModel):
    bookings: list[BookingResponse]
    total_pages: int
    current_page: int
    total: int


class SlotResponse(CamelModel):
    time: str
    available: bool
    staff_id: int


class StatsResponse(CamelModel):
    total_bookings: int
    pending_bookings: int
    confirmed_bookings: int
    today_bookings: int
    revenue: float


class MessageResponse(BaseModel):
    message: str


def cents_to_dollars(cents: int) -> float:
    return round(cents / 100, 2)


def booking_to_response(
    booking: Booking,
    service: Optional[Service] = None,
    staff: Optional[Staff] = None,
) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        service_id=booking.service_id,
        staff_id=booking.staff_id,
        service=ServiceSummary(
            id=service.id,
            name=service.name,
            price=cents_to_dollars(service.price_cents),
            duration=service.duration_minutes,
            category=service.category,
        )
        if service
        else None,
        staff=StaffSummary(id=staff.id, name=staff.name, title=staff.title) if staff else None,
        customer_name=booking.customer_name,
        customer_email=booking.customer_email,
        customer_phone=booking.customer_phone,
        date=booking.date,
        time=booking.time,
        status=booking.status,
        payment_status=booking.payment_status,
        total_price=cents_to_dollars(booking.total_price_cents),
        notes=booking.notes,
        confirmation_sent=booking.confirmation_sent,
        reminder_sent=booking.reminder_sent,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )
