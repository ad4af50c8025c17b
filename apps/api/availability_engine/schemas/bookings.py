"""Schemas for booking finalisation and cancellation."""
from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus


class ProcessBookingRequest(BaseModel):
    payment_reference: str
    hold_id: str


class BookingResponse(BaseModel):
    booking_id: str
    room_id: str
    user_id: str
    check_in: date
    check_out: date
    guests: int
    total_price: int
    payment_reference: str
    status: BookingStatus
    created_at: datetime
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None


class CancelBookingRequest(BaseModel):
    reason: str = Field(default="Cancelled by request")


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse] = Field(default_factory=list)
    count: int = 0
