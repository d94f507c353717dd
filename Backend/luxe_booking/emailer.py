"""
Customer email notifications.

Booking confirmations and status updates are sent through Resend with an
iCalendar invite attached. Callers in the booking lifecycle go through
``notify`` which never raises; delivery failures are logged and reported in
the returned ``NotificationResult``.
"""

import base64
import html
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

import httpx

from .core.config import get_settings
from .models import Booking, BookingStatus, Service, Staff
from .working_hours import parse_hhmm

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class NotificationResult:
    sent: bool
    error: Optional[str] = None


def format_utc_timestamp(value: datetime) -> str:
    """Format datetime as UTC timestamp for iCalendar (RFC 5545)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y%m%dT%H%M%SZ")


def escape_ical_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def build_ics_event(
    uid: str,
    start_at: datetime,
    end_at: datetime,
    summary: str,
    description: str,
    location: str,
    cancelled: bool = False,
) -> str:
    dtstamp = format_utc_timestamp(datetime.now(timezone.utc))
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Luxe Hair Studio//Booking//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:CANCEL" if cancelled else "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART:{format_utc_timestamp(start_at)}",
        f"DTEND:{format_utc_timestamp(end_at)}",
        f"SUMMARY:{escape_ical_text(summary)}",
        f"DESCRIPTION:{escape_ical_text(description)}",
        f"LOCATION:{escape_ical_text(location)}",
    ]
    if cancelled:
        lines.append("STATUS:CANCELLED")
    lines += ["END:VEVENT", "END:VCALENDAR"]
    return "\r\n".join(lines) + "\r\n"


def appointment_window(booking: Booking, service: Service) -> tuple[datetime, datetime]:
    settings = get_settings()
    tz = ZoneInfo(settings.business_timezone)
    start = datetime.combine(booking.date, datetime.min.time(), tzinfo=tz) + timedelta(
        minutes=parse_hhmm(booking.time)
    )
    return start, start + timedelta(minutes=service.duration_minutes)


async def send_booking_email_with_ics(
    to_email: str,
    subject: str,
    html_body: str,
    ics_filename: str,
    ics_text: str,
) -> bool:
    """Send one email. Returns False when email delivery is not configured."""
    settings = get_settings()
    if not settings.resend_api_key or not settings.resend_from:
        logger.warning("Resend is not configured; skipping email send.")
        return False

    attachment_content = base64.b64encode(ics_text.encode("utf-8")).decode("ascii")
    payload = {
        "from": settings.resend_from,
        "to": to_email,
        "subject": subject,
        "html": html_body,
        "attachments": [
            {
                "filename": ics_filename,
                "content": attachment_content,
                "content_type": "text/calendar; charset=utf-8",
            }
        ],
    }

    headers = {
        "Authorization": f"Bearer {settings.resend_api_key}",
        "Content-Type": "application/json",
    }

    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(RESEND_URL, json=payload, headers=headers)
        response.raise_for_status()
    return True


def _render(booking: Booking, service: Service, staff: Staff, headline: str) -> str:
    settings = get_settings()
    return f"""
        <p>Hi {html.escape(booking.customer_name)},</p>
        <p>{html.escape(headline)}</p>
        <ul>
          <li><strong>Service:</strong> {html.escape(service.name)}</li>
          <li><strong>Stylist:</strong> {html.escape(staff.name)}</li>
          <li><strong>Date:</strong> {booking.date.isoformat()}</li>
          <li><strong>Time:</strong> {booking.time}</li>
          <li><strong>Total:</strong> ${booking.total_price_cents / 100:.2f}</li>
          <li><strong>Status:</strong> {booking.status.value}</li>
        </ul>
        <p>{html.escape(settings.business_name)}</p>
    """


async def _send(booking: Booking, service: Service, staff: Staff, subject: str, headline: str) -> bool:
    settings = get_settings()
    start_at, end_at = appointment_window(booking, service)
    ics_text = build_ics_event(
        uid=str(booking.id),
        start_at=start_at,
        end_at=end_at,
        summary=f"{service.name} with {staff.name}",
        description=f"Booking for {booking.customer_name}",
        location=settings.business_name,
        cancelled=booking.status == BookingStatus.CANCELLED,
    )
    return await send_booking_email_with_ics(
        to_email=booking.customer_email,
        subject=subject,
        html_body=_render(booking, service, staff, headline),
        ics_filename=f"booking-{booking.id}.ics",
        ics_text=ics_text,
    )


async def send_booking_confirmation(booking: Booking, service: Service, staff: Staff) -> bool:
    return await _send(
        booking,
        service,
        staff,
        subject=f"Booking received: {service.name}",
        headline="Thank you for booking with us. Your appointment details are below.",
    )


async def send_booking_update(booking: Booking, service: Service, staff: Staff) -> bool:
    if booking.status == BookingStatus.CANCELLED:
        subject = f"Booking cancelled: {service.name}"
        headline = "Your appointment has been cancelled."
    else:
        subject = f"Booking {booking.status.value}: {service.name}"
        headline = f"Your appointment is now {booking.status.value}."
    return await _send(booking, service, staff, subject=subject, headline=headline)


Sender = Callable[[Booking, Service, Staff], Awaitable[bool]]


async def notify(sender: Sender, booking: Booking, service: Service, staff: Staff) -> NotificationResult:
    """Run an email hook; failures are logged and returned, never raised."""
    name = getattr(sender, "__name__", "notification")
    try:
        sent = await sender(booking, service, staff)
    except Exception as exc:
        logger.warning("Failed to send %s for booking %s: %s", name, booking.id, exc)
        return NotificationResult(sent=False, error=str(exc) or exc.__class__.__name__)
    if sent:
        logger.info("Sent %s for booking %s", name, booking.id)
        return NotificationResult(sent=True)
    return NotificationResult(sent=False, error="email delivery not configured")
