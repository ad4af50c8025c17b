"""Occupancy analytics endpoint."""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends

from ..schemas.occupancy import OccupancyData
from ..services.engine import AvailabilityReader
from .deps import get_engine

router = APIRouter()


@router.get("/rooms/{room_id}/occupancy", response_model=OccupancyData)
async def room_occupancy(
    room_id: str,
    start: date,
    end: date,
    engine: AvailabilityReader = Depends(get_engine),
) -> OccupancyData:
    """Return occupancy and revenue for ``[start, end)``."""

    return await engine.get_occupancy_rate(room_id, start, end)
