"""Occupancy figures over a mixed calendar."""
from __future__ import annotations

from datetime import date

import pytest

from availability_engine.core import errors
from availability_engine.schemas.holds import HoldCreateRequest
from availability_engine.schemas.maintenance import BlockDatesRequest, BlockPeriod


def d(day: int) -> date:
    return date(2025, 6, day)


@pytest.mark.asyncio
async def test_occupancy_math(engine, guest_a, guest_b, admin, book) -> None:
    await book(guest_a, "R1", d(1), d(3), "pay-1")
    await engine.create_hold(HoldCreateRequest(room_id="R1", check_in=d(5), check_out=d(6)), guest_b)
    await engine.block_dates(
        BlockDatesRequest(
            room_id="R1", periods=[BlockPeriod(start_date=d(8), end_date=d(10), reason="Painting")]
        ),
        admin,
    )

    data = await engine.get_occupancy_rate("R1", d(1), d(11))

    assert data.total_days == 10
    assert data.booked_days == 2
    assert data.rate == pytest.approx(2 / 10)
    assert data.held_days == 1
    assert data.blocked_days == 2
    assert data.blocked_rate == pytest.approx(0.2)
    assert data.available_days == 5
    assert data.revenue == pytest.approx(100_000)
    assert data.average_daily_rate == pytest.approx(50_000)


@pytest.mark.asyncio
async def test_revenue_counts_only_nights_inside_range(engine, guest_a, book) -> None:
    await book(guest_a, "R2", d(1), d(5), "pay-2")

    data = await engine.get_occupancy_rate("R2", d(3), d(7))

    assert data.booked_days == 2
    assert data.rate == pytest.approx(0.5)
    assert data.revenue == pytest.approx(160_000)


@pytest.mark.asyncio
async def test_empty_range_and_validation(engine) -> None:
    data = await engine.get_occupancy_rate("R1", d(1), d(8))

    assert data.rate == 0
    assert data.revenue == 0
    assert data.average_daily_rate == 0
    with pytest.raises(errors.ValidationError):
        await engine.get_occupancy_rate("R1", d(8), d(1))
    with pytest.raises(errors.NotFoundError):
        await engine.get_occupancy_rate("missing", d(1), d(8))
