"""Schemas for availability checks and calendar views."""
from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from ..models.room_day import RoomDayStatus


class BookingPeriod(BaseModel):
    """Stay period; ``check_out`` itself is not occupied."""

    check_in: date
    check_out: date


class AvailabilityCheckRequest(BaseModel):
    room_id: str
    period: BookingPeriod


class AvailabilityResult(BaseModel):
    room_id: str
    available: bool
    reason: str | None = None
    next_available_time: datetime | None = None
    unavailable_dates: list[date] = Field(default_factory=list)
    conflicting_bookings: list[str] = Field(default_factory=list)


class NextAvailableResponse(BaseModel):
    room_id: str
    duration: int
    next_available: date | None = None


class CalendarDay(BaseModel):
    day: date
    status: RoomDayStatus
    booking_id: str | None = None
    hold_id: str | None = None
    block_id: str | None = None
    blocked_by: str | None = None
    blocked_reason: str | None = None


class CalendarResponse(BaseModel):
    room_id: str
    start: date
    end: date
    days: list[CalendarDay]


class BulkAvailabilityRequest(BaseModel):
    room_ids: list[str] = Field(min_length=1)
    start: date
    end: date


class CalendarStats(BaseModel):
    total_days: int
    available_days: int
    booked_days: int
    held_days: int
    blocked_days: int
    occupancy_rate: int = Field(description="Booked days as a whole percentage of total days")


class RoomCalendar(BaseModel):
    room_id: str
    days: list[CalendarDay]
    stats: CalendarStats


class BulkAvailabilityResponse(BaseModel):
    start: date
    end: date
    rooms: list[RoomCalendar]
