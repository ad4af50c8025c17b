"""Availability checker.

Answers whether every night of a stay is free, finds the next free window and
renders calendar views. Reads only; a day held by a hold whose deadline has
passed is reported as available even before the sweeper reverts it.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import errors
from ..core.clock import ensure_utc, local_instant, local_today
from ..core.config import Settings
from ..models.hold import HoldStatus, ReservationHold
from ..models.room import Room
from ..models.room_day import RoomDayStatus
from ..repositories import bookings as bookings_repo
from ..repositories import calendar as calendar_repo
from ..repositories import holds as holds_repo
from ..repositories import maintenance as maintenance_repo
from ..repositories import rooms as rooms_repo
from ..repositories.calendar import DaySnapshot
from ..schemas import availability as schemas

logger = logging.getLogger(__name__)


def hold_is_live(hold: ReservationHold, now: datetime) -> bool:
    """Return True while the hold is active and its deadline has not passed."""

    return hold.status == HoldStatus.ACTIVE and ensure_utc(now) < ensure_utc(hold.expires_at)


def room_timezone(room: Room, settings: Settings) -> str:
    return room.timezone or settings.property_timezone


def validate_period(check_in: date, check_out: date, *, settings: Settings) -> None:
    """Reject empty, inverted or overly long ranges."""

    if check_out <= check_in:
        raise errors.ValidationError(
            "Check-out must be at least one day after check-in.",
            hint="Pick a check-out date after your check-in date.",
        )
    if (check_out - check_in).days > settings.max_range_days:
        raise errors.ValidationError(
            f"Date ranges cannot exceed {settings.max_range_days} days.",
            hint="Choose a shorter range.",
        )


async def get_room(session: AsyncSession, room_id: str) -> Room:
    room = await rooms_repo.get_by_id(session, room_id)
    if room is None:
        raise errors.NotFoundError(f"Room {room_id} does not exist.")
    return room


async def load_effective_days(
    session: AsyncSession,
    *,
    room_id: str,
    start: date,
    end: date,
    now: datetime,
) -> tuple[list[DaySnapshot], dict[str, ReservationHold]]:
    """Return ledger days with lapsed holds shown as available, plus the live holds."""

    days = await calendar_repo.get_range(session, room_id=room_id, start=start, end=end)
    hold_ids = {day.hold_id for day in days if day.status is RoomDayStatus.HELD and day.hold_id}
    holds = await holds_repo.list_by_ids(session, hold_ids)

    live_holds: dict[str, ReservationHold] = {}
    effective: list[DaySnapshot] = []
    for day in days:
        if day.status is RoomDayStatus.HELD:
            hold = holds.get(day.hold_id or "")
            if hold is None or not hold_is_live(hold, now):
                effective.append(DaySnapshot(room_id=day.room_id, day=day.day, status=RoomDayStatus.AVAILABLE))
                continue
            live_holds[hold.id] = hold
        effective.append(replace(day))
    return effective, live_holds


async def check_availability(
    session: AsyncSession,
    *,
    room_id: str,
    check_in: date,
    check_out: date,
    now: datetime,
    settings: Settings,
) -> schemas.AvailabilityResult:
    """Report whether every night in ``[check_in, check_out)`` is free."""

    async with session.begin():
        return await evaluate_availability(
            session, room_id=room_id, check_in=check_in, check_out=check_out, now=now, settings=settings
        )


async def evaluate_availability(
    session: AsyncSession,
    *,
    room_id: str,
    check_in: date,
    check_out: date,
    now: datetime,
    settings: Settings,
) -> schemas.AvailabilityResult:
    """Run the availability check inside the caller's transaction."""

    validate_period(check_in, check_out, settings=settings)
    room = await get_room(session, room_id)
    tz_name = room_timezone(room, settings)

    days, live_holds = await load_effective_days(
        session, room_id=room_id, start=check_in, end=check_out, now=now
    )
    unavailable = [day for day in days if day.status is not RoomDayStatus.AVAILABLE]
    if unavailable:
        first = unavailable[0]
        booking_ids = sorted({day.booking_id for day in unavailable if day.booking_id})
        return schemas.AvailabilityResult(
            room_id=room_id,
            available=False,
            reason=_reason_for(first),
            next_available_time=await _next_available_time(
                session, first, live_holds=live_holds, tz_name=tz_name, settings=settings
            ),
            unavailable_dates=[day.day for day in unavailable],
            conflicting_bookings=booking_ids,
        )

    # Same-day turnover: the previous guest leaves at the checkout hour.
    departing = await bookings_repo.list_confirmed_checkouts(
        session, room_id=room_id, start=check_in, end=check_in + timedelta(days=1)
    )
    if departing:
        checkout_at = local_instant(check_in, settings.checkout_hour, tz_name)
        if ensure_utc(now) < checkout_at:
            return schemas.AvailabilityResult(
                room_id=room_id,
                available=False,
                reason=(
                    f"Room is occupied until checkout at {settings.checkout_hour:02d}:00 local time "
                    f"on {check_in.isoformat()}."
                ),
                next_available_time=checkout_at,
                unavailable_dates=[check_in],
                conflicting_bookings=[booking.id for booking in departing],
            )

    return schemas.AvailabilityResult(room_id=room_id, available=True)


async def get_next_available(
    session: AsyncSession,
    *,
    room_id: str,
    duration: int,
    now: datetime,
    settings: Settings,
    start_from: date | None = None,
) -> date | None:
    """Return the first check-in date of ``duration`` free nights within the horizon."""

    horizon = settings.next_available_horizon_days
    if duration < 1 or duration > horizon:
        raise errors.ValidationError(f"Stay length must be between 1 and {horizon} nights.")

    async with session.begin():
        room = await get_room(session, room_id)
        tz_name = room_timezone(room, settings)
        today = local_today(now, tz_name)
        first = max(start_from or today, today)
        last = first + timedelta(days=horizon)

        days, _ = await load_effective_days(session, room_id=room_id, start=first, end=last, now=now)
        departing = await bookings_repo.list_confirmed_checkouts(
            session, room_id=room_id, start=first, end=last
        )
    turnover_at = {
        booking.check_out: local_instant(booking.check_out, settings.checkout_hour, tz_name)
        for booking in departing
    }

    run = 0
    for index, day in enumerate(days):
        run = run + 1 if day.status is RoomDayStatus.AVAILABLE else 0
        if run < duration:
            continue
        start = days[index - duration + 1].day
        if start in turnover_at and ensure_utc(now) < turnover_at[start]:
            continue
        return start
    return None


async def get_calendar(
    session: AsyncSession,
    *,
    room_id: str,
    start: date,
    end: date,
    now: datetime,
    settings: Settings,
) -> schemas.CalendarResponse:
    validate_period(start, end, settings=settings)
    async with session.begin():
        await get_room(session, room_id)
        days, _ = await load_effective_days(session, room_id=room_id, start=start, end=end, now=now)
    return schemas.CalendarResponse(
        room_id=room_id, start=start, end=end, days=[_calendar_day(day) for day in days]
    )


async def get_bulk_availability(
    session: AsyncSession,
    *,
    room_ids: list[str],
    start: date,
    end: date,
    now: datetime,
    settings: Settings,
) -> schemas.BulkAvailabilityResponse:
    """Return calendars and day counts for several rooms at once."""

    validate_period(start, end, settings=settings)
    unique_ids = list(dict.fromkeys(room_ids))
    if len(unique_ids) > settings.max_bulk_rooms:
        raise errors.ValidationError(f"Cannot query more than {settings.max_bulk_rooms} rooms at once.")

    async with session.begin():
        rooms = await rooms_repo.list_by_ids(session, unique_ids)
        missing = [room_id for room_id in unique_ids if room_id not in rooms]
        if missing:
            raise errors.NotFoundError(f"Unknown rooms: {', '.join(missing)}.")
        ledgers = {
            room_id: (await load_effective_days(session, room_id=room_id, start=start, end=end, now=now))[0]
            for room_id in unique_ids
        }

    calendars = []
    for room_id, days in ledgers.items():
        counts = {status: 0 for status in RoomDayStatus}
        for day in days:
            counts[day.status] += 1
        total = len(days)
        stats = schemas.CalendarStats(
            total_days=total,
            available_days=counts[RoomDayStatus.AVAILABLE],
            booked_days=counts[RoomDayStatus.BOOKED],
            held_days=counts[RoomDayStatus.HELD],
            blocked_days=counts[RoomDayStatus.BLOCKED],
            occupancy_rate=round(counts[RoomDayStatus.BOOKED] / total * 100) if total else 0,
        )
        calendars.append(
            schemas.RoomCalendar(room_id=room_id, days=[_calendar_day(day) for day in days], stats=stats)
        )
    return schemas.BulkAvailabilityResponse(start=start, end=end, rooms=calendars)


def _calendar_day(day: DaySnapshot) -> schemas.CalendarDay:
    return schemas.CalendarDay(
        day=day.day,
        status=day.status,
        booking_id=day.booking_id,
        hold_id=day.hold_id,
        block_id=day.block_id,
        blocked_by=day.blocked_by,
        blocked_reason=day.blocked_reason,
    )


def _reason_for(day: DaySnapshot) -> str:
    if day.status is RoomDayStatus.BOOKED:
        return "Room is already booked for the selected dates."
    if day.status is RoomDayStatus.HELD:
        return "Room is temporarily held by another guest who is completing checkout."
    if day.blocked_reason:
        return f"Room is closed for maintenance ({day.blocked_reason})."
    return "Room is closed for maintenance."


async def _next_available_time(
    session: AsyncSession,
    day: DaySnapshot,
    *,
    live_holds: dict[str, ReservationHold],
    tz_name: str,
    settings: Settings,
) -> datetime | None:
    if day.status is RoomDayStatus.HELD and day.hold_id in live_holds:
        return ensure_utc(live_holds[day.hold_id].expires_at)
    if day.status is RoomDayStatus.BOOKED and day.booking_id:
        booking = await bookings_repo.get_by_id(session, day.booking_id)
        if booking is not None:
            return local_instant(booking.check_out, settings.checkout_hour, tz_name)
    if day.status is RoomDayStatus.BLOCKED and day.block_id:
        blocks = await maintenance_repo.list_by_ids(session, {day.block_id})
        block = blocks.get(day.block_id)
        if block is not None:
            return local_instant(block.end_date, 0, tz_name)
    logger.debug("No next-available time derivable for %s on %s", day.room_id, day.day)
    return None
