"""
Manual email re-sends for a booking (front-desk "send again" buttons).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from . import lifecycle
from .core.db import get_session
from .routes_bookings import parse_booking_id
from .schemas import MessageResponse

router = APIRouter(prefix="/email", tags=["email"])


@router.post("/resend-confirmation/{booking_id}", response_model=MessageResponse)
async def resend_confirmation(booking_id: str, session: AsyncSession = Depends(get_session)):
    await lifecycle.resend_confirmation(session, parse_booking_id(booking_id))
    return MessageResponse(message="Confirmation email sent successfully")


@router.post("/send-update/{booking_id}", response_model=MessageResponse)
async def send_update(booking_id: str, session: AsyncSession = Depends(get_session)):
    await lifecycle.resend_update(session, parse_booking_id(booking_id))
    return MessageResponse(message="Update email sent successfully")
