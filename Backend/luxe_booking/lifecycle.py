"""
Booking lifecycle.

Create, update and delete bookings, enforcing the status graph

    pending -> confirmed -> completed
    pending | confirmed -> cancelled

and triggering the customer email hooks. Conflict checks and the writes they
guard run under the staff member's day lock (see ``store.slot_lock``).

Functions:
    validate_booking_payload - Collect violated fields of a create request
    check_transition - Reject status moves the lifecycle does not allow
    create_booking - Validate, conflict-check, persist, send confirmation
    update_booking - Apply partial changes, re-checking conflicts on reschedule
    delete_booking - Remove a booking
    resend_confirmation / resend_update - Explicit email re-sends
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from . import emailer, store
from .emailer import NotificationResult
from .errors import (
    BookingError,
    InvalidTransitionError,
    NotFoundError,
    NotificationError,
    SlotConflictError,
    ValidationError,
)
from .models import ACTIVE_STATUSES, Booking, BookingStatus, PaymentStatus, Service, Staff
from .scheduling import has_conflict
from .schemas import BookingCreateRequest, BookingUpdateRequest
from .working_hours import Calendar, format_hhmm, parse_hhmm

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

NOTIFY_ON_STATUS = (BookingStatus.CONFIRMED, BookingStatus.CANCELLED)

RESCHEDULE_FIELDS = ("service_id", "staff_id", "date", "time")


@dataclass(frozen=True)
class BookingOutcome:
    booking: Booking
    service: Optional[Service]
    staff: Optional[Staff]
    notification: Optional[NotificationResult] = None


# ============================================================================
# VALIDATION
# ============================================================================

def parse_iso_day(value: Any) -> Optional[date]:
    """Parse an ISO 8601 date or datetime and keep only the calendar day."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def normalize_time(value: Any) -> Optional[str]:
    try:
        return format_hhmm(parse_hhmm(value))
    except ValueError:
        return None


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_PATTERN.match(value.strip()))


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_booking_payload(payload: BookingCreateRequest) -> list[str]:
    errors: list[str] = []
    if payload.service_id is None:
        errors.append("serviceId")
    if payload.staff_id is None:
        errors.append("staffId")
    if _is_blank(payload.customer_name):
        errors.append("customerName")
    if not is_valid_email(payload.customer_email):
        errors.append("customerEmail")
    if _is_blank(payload.customer_phone):
        errors.append("customerPhone")
    if parse_iso_day(payload.date) is None:
        errors.append("date")
    if normalize_time(payload.time) is None:
        errors.append("time")
    return errors


def validate_booking_changes(changes: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    for field, key in (
        ("service_id", "serviceId"),
        ("staff_id", "staffId"),
        ("status", "status"),
        ("payment_status", "paymentStatus"),
    ):
        if field in changes and changes[field] is None:
            errors.append(key)
    for field, key in (("customer_name", "customerName"), ("customer_phone", "customerPhone")):
        if field in changes and _is_blank(changes[field]):
            errors.append(key)
    if "customer_email" in changes and not is_valid_email(changes["customer_email"]):
        errors.append("customerEmail")
    if "date" in changes and parse_iso_day(changes["date"]) is None:
        errors.append("date")
    if "time" in changes and normalize_time(changes["time"]) is None:
        errors.append("time")
    for field, key in (("confirmation_sent", "confirmationSent"), ("reminder_sent", "reminderSent")):
        if field in changes and changes[field] is None:
            errors.append(key)
    return errors


def check_transition(current: BookingStatus, requested: BookingStatus) -> None:
    if current == requested:
        return
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, requested.value)


def ensure_within_working_hours(staff: Staff, day: date, start_time: str, duration: int) -> None:
    working_day = Calendar.from_json(staff.working_hours).for_date(day)
    if not working_day.is_working:
        raise ValidationError(["date"], message="Staff member does not work on this day")
    if not working_day.contains(parse_hhmm(start_time), duration):
        raise ValidationError(["time"], message="Requested time is outside working hours")


async def ensure_staff_offers_service(
    session: AsyncSession, staff: Staff, service: Service, timeout: Optional[float] = None
) -> None:
    """Staff without any service assignments are treated as generalists."""
    offered = await store.fetch_staff_service_ids(session, staff.id, timeout)
    if offered and service.id not in offered:
        raise ValidationError(["serviceId"], message="Staff member does not perform this service")


# ============================================================================
# TRANSITIONS
# ============================================================================

async def create_booking(
    session: AsyncSession,
    payload: BookingCreateRequest,
    timeout: Optional[float] = None,
) -> BookingOutcome:
    errors = validate_booking_payload(payload)
    if errors:
        raise ValidationError(errors)

    day = parse_iso_day(payload.date)
    start_time = normalize_time(payload.time)

    service = await store.fetch_service(session, payload.service_id, timeout)
    staff = await store.fetch_staff(session, payload.staff_id, timeout)
    await ensure_staff_offers_service(session, staff, service, timeout)
    ensure_within_working_hours(staff, day, start_time, service.duration_minutes)

    async with store.slot_lock(staff.id, day):
        if await has_conflict(session, staff.id, day, start_time, service.duration_minutes, timeout=timeout):
            raise SlotConflictError(
                details={"staff_id": staff.id, "date": day.isoformat(), "time": start_time}
            )
        booking = Booking(
            service_id=service.id,
            staff_id=staff.id,
            customer_name=payload.customer_name.strip(),
            customer_email=payload.customer_email.strip().lower(),
            customer_phone=payload.customer_phone.strip(),
            date=day,
            time=start_time,
            notes=payload.notes.strip() if payload.notes else None,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            total_price_cents=service.price_cents,
        )
        await store.insert_booking(session, booking, timeout)

    logger.info("Created booking %s for staff %s on %s at %s", booking.id, staff.id, day, start_time)

    notification = await emailer.notify(emailer.send_booking_confirmation, booking, service, staff)
    if notification.sent:
        notification = await _record_confirmation(session, booking, service, staff, timeout)

    return BookingOutcome(booking=booking, service=service, staff=staff, notification=notification)


async def _record_confirmation(
    session: AsyncSession,
    booking: Booking,
    service: Service,
    staff: Staff,
    timeout: Optional[float],
) -> NotificationResult:
    """
    Save ``confirmation_sent`` after the booking itself is committed.

    The flag belongs to the notification side channel: if the write fails the
    booking stands and the failure is reported in the result. The instances
    are detached first so a rollback cannot expire the committed state.
    """
    for instance in (booking, service, staff):
        session.expunge(instance)
    try:
        await store.mark_confirmation_sent(session, booking.id, timeout)
    except BookingError as exc:
        logger.warning("Confirmation sent for booking %s but flag not saved: %s", booking.id, exc.message)
        return NotificationResult(sent=True, error=f"confirmation flag not saved: {exc.message}")
    booking.confirmation_sent = True
    return NotificationResult(sent=True)


def _normalize_changes(changes: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(changes)
    if "date" in normalized:
        normalized["date"] = parse_iso_day(normalized["date"])
    if "time" in normalized:
        normalized["time"] = normalize_time(normalized["time"])
    if "customer_email" in normalized:
        normalized["customer_email"] = normalized["customer_email"].strip().lower()
    for field in ("customer_name", "customer_phone"):
        if field in normalized:
            normalized[field] = normalized[field].strip()
    return normalized


async def update_booking(
    session: AsyncSession,
    booking_id: uuid.UUID,
    payload: BookingUpdateRequest,
    timeout: Optional[float] = None,
) -> BookingOutcome:
    """
    Apply a partial update.

    Moving a booking that stays active (new date, time, staff member or
    service) re-runs the working-hours and conflict checks, ignoring the
    booking itself.
    """
    raw_changes = payload.model_dump(exclude_unset=True)
    errors = validate_booking_changes(raw_changes)
    if errors:
        raise ValidationError(errors)
    changes = _normalize_changes(raw_changes)

    booking, service, staff = await store.fetch_booking_details(session, booking_id, timeout)
    previous_status = booking.status
    new_status = changes.get("status", previous_status)
    check_transition(previous_status, new_status)

    moved = any(field in changes and changes[field] != getattr(booking, field) for field in RESCHEDULE_FIELDS)
    if "service_id" in changes and changes["service_id"] != booking.service_id:
        service = await store.fetch_service(session, changes["service_id"], timeout)
    if "staff_id" in changes and changes["staff_id"] != booking.staff_id:
        staff = await store.fetch_staff(session, changes["staff_id"], timeout)

    if moved and new_status in ACTIVE_STATUSES:
        if service is None:
            raise NotFoundError("Service not found", details={"service_id": booking.service_id})
        if staff is None:
            raise NotFoundError("Staff member not found", details={"staff_id": booking.staff_id})
        target_day = changes.get("date", booking.date)
        target_time = changes.get("time", booking.time)
        await ensure_staff_offers_service(session, staff, service, timeout)
        ensure_within_working_hours(staff, target_day, target_time, service.duration_minutes)

        async with store.slot_locks((booking.staff_id, booking.date), (staff.id, target_day)):
            if await has_conflict(
                session,
                staff.id,
                target_day,
                target_time,
                service.duration_minutes,
                exclude_booking_id=booking.id,
                timeout=timeout,
            ):
                raise SlotConflictError(
                    details={"staff_id": staff.id, "date": target_day.isoformat(), "time": target_time}
                )
            _apply(booking, changes)
            await store.commit(session, booking, timeout)
    else:
        _apply(booking, changes)
        await store.commit(session, booking, timeout)

    logger.info("Updated booking %s (%s)", booking.id, ", ".join(sorted(changes)) or "no changes")

    notification = None
    if new_status != previous_status and new_status in NOTIFY_ON_STATUS:
        if service is None or staff is None:
            logger.warning("Skipping update email for booking %s: service or staff missing", booking.id)
            notification = NotificationResult(sent=False, error="service or staff missing")
        else:
            notification = await emailer.notify(emailer.send_booking_update, booking, service, staff)

    return BookingOutcome(booking=booking, service=service, staff=staff, notification=notification)


def _apply(booking: Booking, changes: dict[str, Any]) -> None:
    for field, value in changes.items():
        setattr(booking, field, value)


async def delete_booking(
    session: AsyncSession,
    booking_id: uuid.UUID,
    timeout: Optional[float] = None,
) -> None:
    booking = await store.fetch_booking(session, booking_id, timeout)
    await store.delete_booking(session, booking, timeout)
    logger.info("Deleted booking %s", booking_id)


# ============================================================================
# EXPLICIT EMAIL RE-SENDS
# ============================================================================

async def _deliver(sender: emailer.Sender, booking: Booking, service: Optional[Service], staff: Optional[Staff]) -> None:
    if service is None or staff is None:
        raise NotFoundError("Service or staff not found for booking", details={"booking_id": str(booking.id)})
    result = await emailer.notify(sender, booking, service, staff)
    if not result.sent:
        raise NotificationError("Error sending email", details={"reason": result.error})


async def resend_confirmation(
    session: AsyncSession,
    booking_id: uuid.UUID,
    timeout: Optional[float] = None,
) -> Booking:
    booking, service, staff = await store.fetch_booking_details(session, booking_id, timeout)
    await _deliver(emailer.send_booking_confirmation, booking, service, staff)
    booking.confirmation_sent = True
    return await store.commit(session, booking, timeout)


async def resend_update(
    session: AsyncSession,
    booking_id: uuid.UUID,
    timeout: Optional[float] = None,
) -> Booking:
    booking, service, staff = await store.fetch_booking_details(session, booking_id, timeout)
    await _deliver(emailer.send_booking_update, booking, service, staff)
    return booking
