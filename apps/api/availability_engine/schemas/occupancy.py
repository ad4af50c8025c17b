"""Schemas for occupancy analytics."""
from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class OccupancyData(BaseModel):
    room_id: str
    start: date
    end: date
    rate: float
    total_days: int
    booked_days: int
    available_days: int
    held_days: int
    blocked_days: int
    blocked_rate: float
    revenue: float
    average_daily_rate: float
