"""Occupancy analytics over the calendar ledger."""
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings
from ..models.room_day import RoomDayStatus
from ..repositories import bookings as bookings_repo
from ..schemas.occupancy import OccupancyData
from .availability import get_room, load_effective_days, validate_period


async def get_occupancy_rate(
    session: AsyncSession,
    *,
    room_id: str,
    start: date,
    end: date,
    now: datetime,
    settings: Settings,
) -> OccupancyData:
    """Summarise ``[start, end)`` for one room.

    ``rate`` is booked days over total days. Revenue adds, for every booked day,
    the per-night price of the booking that owns it.
    """

    validate_period(start, end, settings=settings)
    async with session.begin():
        await get_room(session, room_id)
        days, _ = await load_effective_days(session, room_id=room_id, start=start, end=end, now=now)
        bookings = await bookings_repo.list_by_ids(
            session, {day.booking_id for day in days if day.status is RoomDayStatus.BOOKED and day.booking_id}
        )

    counts = {status: 0 for status in RoomDayStatus}
    revenue = 0.0
    for day in days:
        counts[day.status] += 1
        if day.status is RoomDayStatus.BOOKED:
            booking = bookings.get(day.booking_id or "")
            if booking is not None and booking.nights > 0:
                revenue += booking.total_price / booking.nights

    total = len(days)
    booked = counts[RoomDayStatus.BOOKED]
    return OccupancyData(
        room_id=room_id,
        start=start,
        end=end,
        rate=booked / total if total else 0.0,
        total_days=total,
        booked_days=booked,
        available_days=counts[RoomDayStatus.AVAILABLE],
        held_days=counts[RoomDayStatus.HELD],
        blocked_days=counts[RoomDayStatus.BLOCKED],
        blocked_rate=counts[RoomDayStatus.BLOCKED] / total if total else 0.0,
        revenue=round(revenue, 2),
        average_daily_rate=round(revenue / booked, 2) if booked else 0.0,
    )
