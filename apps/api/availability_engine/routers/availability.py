"""Availability and calendar endpoints."""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from ..schemas import availability as availability_schema
from ..services.engine import AvailabilityReader
from .deps import get_engine

router = APIRouter()


@router.post("/availability/check", response_model=availability_schema.AvailabilityResult)
async def check_availability(
    payload: availability_schema.AvailabilityCheckRequest,
    engine: AvailabilityReader = Depends(get_engine),
) -> availability_schema.AvailabilityResult:
    """Report whether a room is free for the whole stay."""

    return await engine.check_availability(payload.room_id, payload.period.check_in, payload.period.check_out)


@router.post("/availability/bulk", response_model=availability_schema.BulkAvailabilityResponse)
async def bulk_availability(
    payload: availability_schema.BulkAvailabilityRequest,
    engine: AvailabilityReader = Depends(get_engine),
) -> availability_schema.BulkAvailabilityResponse:
    return await engine.get_bulk_availability(payload.room_ids, payload.start, payload.end)


@router.get("/rooms/{room_id}/next-available", response_model=availability_schema.NextAvailableResponse)
async def next_available(
    room_id: str,
    duration: int = Query(default=1, ge=1),
    start_from: date | None = None,
    engine: AvailabilityReader = Depends(get_engine),
) -> availability_schema.NextAvailableResponse:
    """Return the first check-in date with ``duration`` free nights."""

    found = await engine.get_next_available(room_id, duration, start_from=start_from)
    return availability_schema.NextAvailableResponse(room_id=room_id, duration=duration, next_available=found)


@router.get("/rooms/{room_id}/calendar", response_model=availability_schema.CalendarResponse)
async def room_calendar(
    room_id: str,
    start: date,
    end: date,
    engine: AvailabilityReader = Depends(get_engine),
) -> availability_schema.CalendarResponse:
    return await engine.get_calendar(room_id, start, end)
