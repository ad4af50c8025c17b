"""Booking endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..core.security import CurrentUser, get_current_user
from ..schemas import bookings as bookings_schema
from ..services.engine import ReservationDesk
from .deps import get_engine

router = APIRouter()


@router.post("/bookings", response_model=bookings_schema.BookingResponse, status_code=status.HTTP_201_CREATED)
async def process_booking(
    payload: bookings_schema.ProcessBookingRequest,
    user: CurrentUser | None = Depends(get_current_user),
    engine: ReservationDesk = Depends(get_engine),
) -> bookings_schema.BookingResponse:
    """Turn a paid hold into a confirmed booking."""

    return await engine.process_atomic_booking(payload, user)


@router.get("/bookings", response_model=bookings_schema.BookingListResponse)
async def list_bookings(
    user: CurrentUser | None = Depends(get_current_user),
    engine: ReservationDesk = Depends(get_engine),
) -> bookings_schema.BookingListResponse:
    """Return the signed-in guest's bookings, newest first."""

    return await engine.list_bookings(user)


@router.post("/bookings/{booking_id}/cancel", response_model=bookings_schema.BookingResponse)
async def cancel_booking(
    booking_id: str,
    payload: bookings_schema.CancelBookingRequest,
    user: CurrentUser | None = Depends(get_current_user),
    engine: ReservationDesk = Depends(get_engine),
) -> bookings_schema.BookingResponse:
    return await engine.cancel_booking(booking_id, user, payload.reason)
