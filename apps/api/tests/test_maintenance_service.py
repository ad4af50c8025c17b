"""Maintenance blocker: partial-failure batches, dry runs and unblocking."""
from __future__ import annotations

from datetime import date

import pytest

from availability_engine.core import errors
from availability_engine.core.security import CurrentUser
from availability_engine.repositories import calendar as calendar_repo
from availability_engine.schemas.holds import HoldCreateRequest
from availability_engine.schemas.maintenance import BlockDatesRequest, BlockPeriod, UnblockOutcome


def d(day: int) -> date:
    return date(2025, 6, day)


def period(start: date, end: date, reason: str = "Deep clean") -> BlockPeriod:
    return BlockPeriod(start_date=start, end_date=end, reason=reason)


@pytest.mark.asyncio
async def test_blocking_requires_admin(engine, guest_a) -> None:
    request = BlockDatesRequest(room_id="R1", periods=[period(d(1), d(2))])

    with pytest.raises(errors.UnauthorizedError):
        await engine.block_dates(request, None)
    with pytest.raises(errors.ForbiddenError):
        await engine.block_dates(request, guest_a)
    with pytest.raises(errors.ForbiddenError):
        await engine.validate_block(request, guest_a)


@pytest.mark.asyncio
async def test_block_never_clobbers_booked_or_held_days(engine, admin, guest_a, guest_b, book, ledger) -> None:
    booking = await book(guest_a, "R1", d(2), d(3), "pay-1")
    await engine.create_hold(HoldCreateRequest(room_id="R1", check_in=d(5), check_out=d(6)), guest_b)

    result = await engine.block_dates(
        BlockDatesRequest(
            room_id="R1",
            periods=[period(d(1), d(4)), period(d(4), d(7)), period(d(8), d(10), "New carpet")],
        ),
        admin,
    )

    assert result.blocked_periods == 1
    assert result.blocked_days == 2
    assert len(result.block_ids) == 1
    assert [(c.day, c.current_status) for c in result.conflicts] == [(d(2), "booked"), (d(5), "held")]
    assert all(c.reason for c in result.conflicts)

    days = await ledger("R1", d(1), d(10))
    assert days[d(2)] == "booked"
    assert days[d(5)] == "held"
    assert [days[d(1)], days[d(3)], days[d(4)], days[d(6)]] == ["available"] * 4
    assert [days[d(8)], days[d(9)]] == ["blocked", "blocked"]

    calendar = await engine.get_calendar("R1", d(2), d(3))
    assert calendar.days[0].booking_id == booking.booking_id


@pytest.mark.asyncio
async def test_invalid_periods_are_reported_not_raised(engine, clock, admin) -> None:
    clock.advance(days=3)

    result = await engine.block_dates(
        BlockDatesRequest(
            room_id="R1",
            periods=[period(d(1), d(5)), period(d(6), d(6)), period(d(6), d(8), "  "), period(d(10), d(11))],
        ),
        admin,
    )

    reasons = [conflict.reason for conflict in result.conflicts]
    assert reasons == [
        "Cannot modify dates in the past.",
        "End date must be after start date.",
        "A reason is required for maintenance blocks.",
    ]
    assert result.blocked_periods == 1


@pytest.mark.asyncio
async def test_block_reclaims_lapsed_holds(engine, clock, admin, guest_a) -> None:
    await engine.create_hold(HoldCreateRequest(room_id="R1", check_in=d(3), check_out=d(5)), guest_a)
    clock.advance(minutes=15)

    result = await engine.block_dates(BlockDatesRequest(room_id="R1", periods=[period(d(3), d(5))]), admin)

    assert result.blocked_periods == 1
    assert result.conflicts == []


@pytest.mark.asyncio
async def test_validate_block_is_a_dry_run(engine, admin, guest_a, book, ledger) -> None:
    await book(guest_a, "R1", d(2), d(3), "pay-1")
    await engine.block_dates(BlockDatesRequest(room_id="R1", periods=[period(d(4), d(5))]), admin)

    validation = await engine.validate_block(
        BlockDatesRequest(room_id="R1", periods=[period(d(1), d(6))]), admin
    )

    assert validation.valid is False
    assert [(c.day, c.current_status) for c in validation.conflicts] == [(d(2), "booked")]
    assert [w.day for w in validation.warnings] == [d(4)]
    assert (await ledger("R1", d(1), d(2)))[d(1)] == "available"

    clean = await engine.validate_block(BlockDatesRequest(room_id="R1", periods=[period(d(6), d(9))]), admin)
    assert clean.valid is True
    assert clean.conflicts == [] and clean.warnings == []


@pytest.mark.asyncio
async def test_unblock_restores_days_once(engine, admin, ledger) -> None:
    result = await engine.block_dates(BlockDatesRequest(room_id="R1", periods=[period(d(2), d(4))]), admin)
    block_id = result.block_ids[0]

    with pytest.raises(errors.ForbiddenError):
        await engine.unblock(block_id, CurrentUser(user_id="housekeeping"))

    first = await engine.unblock(block_id, admin)
    second = await engine.unblock(block_id, CurrentUser(user_id="admin-2", is_admin=True))

    assert first.outcome is UnblockOutcome.UNBLOCKED
    assert second.outcome is UnblockOutcome.ALREADY_RELEASED
    assert set((await ledger("R1", d(2), d(4))).values()) == {"available"}
    with pytest.raises(errors.NotFoundError):
        await engine.unblock("missing", admin)


@pytest.mark.asyncio
async def test_block_after_sweep_expired_a_stale_hold(
    engine, clock, session_factory, admin, guest_a, ledger, monkeypatch
) -> None:
    lapsed = await engine.create_hold(HoldCreateRequest(room_id="R1", check_in=d(3), check_out=d(5)), guest_a)
    async with session_factory() as session:
        async with session.begin():
            before_sweep = await calendar_repo.get_range(session, room_id="R1", start=d(3), end=d(5))
    clock.advance(minutes=10)
    await engine.expire_hold(lapsed.hold_id)

    read_range = calendar_repo.get_range
    reads = 0

    async def sweep_lands_after_first_read(session, **kwargs):
        nonlocal reads
        reads += 1
        return before_sweep if reads == 1 else await read_range(session, **kwargs)

    monkeypatch.setattr(calendar_repo, "get_range", sweep_lands_after_first_read)

    result = await engine.block_dates(BlockDatesRequest(room_id="R1", periods=[period(d(3), d(5))]), admin)

    monkeypatch.undo()
    assert result.blocked_days == 2
    assert result.conflicts == []
    assert set((await ledger("R1", d(3), d(5))).values()) == {"blocked"}
