"""Availability checker behaviour: holds, bookings, blocks and same-day turnover."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from availability_engine.core import errors
from availability_engine.schemas.holds import HoldCreateRequest
from availability_engine.schemas.maintenance import BlockDatesRequest, BlockPeriod
from availability_engine.services.engine import AvailabilityEngine


def d(day: int) -> date:
    return date(2025, 6, day)


async def _block(engine, admin, room_id: str, start: date, end: date) -> None:
    result = await engine.block_dates(
        BlockDatesRequest(room_id=room_id, periods=[BlockPeriod(start_date=start, end_date=end, reason="Repaint")]),
        admin,
    )
    assert result.blocked_periods == 1


@pytest.mark.asyncio
async def test_empty_calendar_is_available(engine) -> None:
    result = await engine.check_availability("R1", d(1), d(5))

    assert result.available is True
    assert result.reason is None
    assert result.unavailable_dates == []


@pytest.mark.asyncio
async def test_invalid_range_and_unknown_room(engine) -> None:
    with pytest.raises(errors.ValidationError):
        await engine.check_availability("R1", d(5), d(5))
    with pytest.raises(errors.ValidationError):
        await engine.check_availability("R1", d(5), d(2))
    with pytest.raises(errors.ValidationError):
        await engine.check_availability("R1", d(1), d(1) + timedelta(days=400))
    with pytest.raises(errors.NotFoundError):
        await engine.check_availability("nope", d(1), d(2))


@pytest.mark.asyncio
async def test_active_hold_blocks_intersecting_days(engine, guest_a) -> None:
    hold = await engine.create_hold(HoldCreateRequest(room_id="R1", check_in=d(1), check_out=d(3)), guest_a)

    result = await engine.check_availability("R1", d(2), d(4))

    assert result.available is False
    assert result.unavailable_dates == [d(2)]
    assert "held" in (result.reason or "")
    assert result.next_available_time == hold.expires_at
    assert (await engine.check_availability("R1", d(3), d(5))).available is True


@pytest.mark.asyncio
async def test_lapsed_hold_reads_as_available_before_sweep(engine, clock, guest_a, ledger) -> None:
    await engine.create_hold(HoldCreateRequest(room_id="R1", check_in=d(1), check_out=d(3)), guest_a)

    clock.advance(minutes=9, seconds=59)
    assert (await engine.check_availability("R1", d(1), d(3))).available is False

    clock.advance(seconds=1)
    assert (await engine.check_availability("R1", d(1), d(3))).available is True
    # The ledger still says held until the sweeper or a new hold reclaims it.
    assert set((await ledger("R1", d(1), d(3))).values()) == {"held"}


@pytest.mark.asyncio
async def test_booked_days_report_booking_and_checkout_time(engine, guest_a, book) -> None:
    booking = await book(guest_a, "R1", d(1), d(4), "pay-1")

    result = await engine.check_availability("R1", d(2), d(6))

    assert result.available is False
    assert result.unavailable_dates == [d(2), d(3)]
    assert result.conflicting_bookings == [booking.booking_id]
    # 11:00 in Lagos (UTC+1) on the checkout date.
    assert result.next_available_time == datetime(2025, 6, 4, 10, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_blocked_days_report_reason_and_block_end(engine, admin) -> None:
    await _block(engine, admin, "R1", d(2), d(4))

    result = await engine.check_availability("R1", d(1), d(3))

    assert result.available is False
    assert "Repaint" in (result.reason or "")
    # Midnight in Lagos at the end of the block.
    assert result.next_available_time == datetime(2025, 6, 3, 23, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_checkout_day_carve_out(engine, clock, guest_a, guest_b, book) -> None:
    booking = await book(guest_a, "R1", d(1), d(3), "pay-1")

    clock.set(datetime(2025, 6, 3, 9, 59, tzinfo=timezone.utc))  # 10:59 Lagos
    before = await engine.check_availability("R1", d(3), d(5))
    assert before.available is False
    assert before.unavailable_dates == [d(3)]
    assert before.conflicting_bookings == [booking.booking_id]
    assert before.next_available_time == datetime(2025, 6, 3, 10, 0, tzinfo=timezone.utc)
    assert (await engine.check_availability("R1", d(4), d(5))).available is True
    with pytest.raises(errors.ConflictError):
        await engine.create_hold(HoldCreateRequest(room_id="R1", check_in=d(3), check_out=d(5)), guest_b)

    clock.set(datetime(2025, 6, 3, 10, 0, tzinfo=timezone.utc))  # 11:00 Lagos
    assert (await engine.check_availability("R1", d(3), d(5))).available is True
    hold = await engine.create_hold(HoldCreateRequest(room_id="R1", check_in=d(3), check_out=d(5)), guest_b)
    assert hold.check_in == d(3)


@pytest.mark.asyncio
async def test_carve_out_uses_room_timezone(engine, clock, guest_a, book) -> None:
    await book(guest_a, "R3", d(1), d(3), "pay-utc")

    clock.set(datetime(2025, 6, 3, 10, 30, tzinfo=timezone.utc))  # 11:30 Lagos, 10:30 UTC
    result = await engine.check_availability("R3", d(3), d(4))

    assert result.available is False
    assert result.next_available_time == datetime(2025, 6, 3, 11, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_next_available_skips_holds_and_blocks(engine, guest_a, admin) -> None:
    await engine.create_hold(HoldCreateRequest(room_id="R1", check_in=d(1), check_out=d(3)), guest_a)
    await _block(engine, admin, "R1", d(5), d(6))

    assert await engine.get_next_available("R1", 2) == d(3)
    assert await engine.get_next_available("R1", 3) == d(6)
    assert await engine.get_next_available("R1", 1, start_from=d(5)) == d(6)


@pytest.mark.asyncio
async def test_next_available_respects_carve_out(engine, clock, guest_a, book) -> None:
    await book(guest_a, "R1", d(1), d(3), "pay-1")
    clock.set(datetime(2025, 6, 3, 8, 0, tzinfo=timezone.utc))  # 09:00 Lagos on checkout day

    assert await engine.get_next_available("R1", 1) == d(4)

    clock.set(datetime(2025, 6, 3, 10, 0, tzinfo=timezone.utc))
    assert await engine.get_next_available("R1", 1) == d(3)


@pytest.mark.asyncio
async def test_next_available_returns_none_when_horizon_exhausted(
    session_factory, settings, clock, rooms, admin
) -> None:
    short = settings.model_copy(update={"next_available_horizon_days": 4})
    engine = AvailabilityEngine(session_factory, settings=short, clock=clock)
    await _block(engine, admin, "R1", d(2), d(3))

    assert await engine.get_next_available("R1", 3) is None
    assert await engine.get_next_available("R1", 2) == d(3)
    with pytest.raises(errors.ValidationError):
        await engine.get_next_available("R1", 5)


@pytest.mark.asyncio
async def test_calendar_and_bulk_views(engine, guest_a, admin, book) -> None:
    await book(guest_a, "R1", d(1), d(3), "pay-1")
    await _block(engine, admin, "R1", d(4), d(5))
    await engine.create_hold(HoldCreateRequest(room_id="R2", check_in=d(2), check_out=d(3)), guest_a)

    calendar = await engine.get_calendar("R1", d(1), d(6))
    assert [day.status.value for day in calendar.days] == ["booked", "booked", "available", "blocked", "available"]
    assert calendar.days[3].blocked_reason == "Repaint"

    bulk = await engine.get_bulk_availability(["R1", "R2"], d(1), d(6))
    stats = {room.room_id: room.stats for room in bulk.rooms}
    assert stats["R1"].booked_days == 2
    assert stats["R1"].blocked_days == 1
    assert stats["R1"].occupancy_rate == 40
    assert stats["R2"].held_days == 1
    assert stats["R2"].available_days == 4


@pytest.mark.asyncio
async def test_bulk_limits(engine) -> None:
    with pytest.raises(errors.ValidationError):
        await engine.get_bulk_availability([f"room-{i}" for i in range(21)], d(1), d(2))
    with pytest.raises(errors.NotFoundError):
        await engine.get_bulk_availability(["R1", "missing"], d(1), d(2))
