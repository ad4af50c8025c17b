"""Calendar store: the per-room, per-day availability ledger.

Every status change of a ``RoomDay`` goes through :func:`transition_range`, a
compare-and-swap over a contiguous date range. Callers run it inside their own
transaction together with the write to the hold, booking or block that owns
the days; a lost swap raises ``RangeConflict`` so that the surrounding
``session.begin()`` block rolls the whole unit of work back.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterator

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import RangeConflict
from ..models.room_day import RoomDay, RoomDayStatus

_OWNER_COLUMN = {
    RoomDayStatus.HELD: "hold_id",
    RoomDayStatus.BOOKED: "booking_id",
    RoomDayStatus.BLOCKED: "block_id",
}


@dataclass(slots=True)
class DaySnapshot:
    """Read-only view of one ledger day."""

    room_id: str
    day: date
    status: RoomDayStatus
    booking_id: str | None = None
    hold_id: str | None = None
    block_id: str | None = None
    blocked_by: str | None = None
    blocked_reason: str | None = None
    blocked_at: datetime | None = None

    @property
    def owner_id(self) -> str | None:
        column = _OWNER_COLUMN.get(self.status)
        return getattr(self, column) if column else None


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day in ``[start, end)``."""

    current = start
    while current < end:
        yield current
        current += timedelta(days=1)


async def get_range(
    session: AsyncSession,
    *,
    room_id: str,
    start: date,
    end: date,
) -> list[DaySnapshot]:
    """Return one snapshot per day in ``[start, end)``, ordered by date."""

    rows = await _load_rows(session, room_id=room_id, start=start, end=end)
    return [_snapshot(room_id, day, rows.get(day)) for day in iter_days(start, end)]


async def transition_range(
    session: AsyncSession,
    *,
    room_id: str,
    start: date,
    end: date,
    expected: RoomDayStatus,
    new: RoomDayStatus,
    owner_id: str | None = None,
    booking_id: str | None = None,
    hold_id: str | None = None,
    block_id: str | None = None,
    blocked_by: str | None = None,
    blocked_reason: str | None = None,
    blocked_at: datetime | None = None,
) -> int:
    """Move every day in ``[start, end)`` from ``expected`` to ``new``.

    ``owner_id`` additionally requires each day to belong to that hold, booking
    or block. Returns the number of days updated. Raises ``RangeConflict`` for
    the first day that does not match; nothing is written in that case.
    """

    if start >= end:
        raise ValueError("transition range must contain at least one day")

    values = _status_values(
        new,
        booking_id=booking_id,
        hold_id=hold_id,
        block_id=block_id,
        blocked_by=blocked_by,
        blocked_reason=blocked_reason,
        blocked_at=blocked_at,
    )
    days = list(iter_days(start, end))
    rows = await _load_rows(session, room_id=room_id, start=start, end=end, lock=True)

    for day in days:
        current = _snapshot(room_id, day, rows.get(day))
        if current.status is not expected or (owner_id is not None and current.owner_id != owner_id):
            raise RangeConflict(room_id, day, current.status.value, expected.value)

    for day in days:
        if day not in rows:
            try:
                await session.execute(insert(RoomDay).values(room_id=room_id, day=day, **values))
            except IntegrityError as exc:
                # Another writer materialised the row after our read.
                raise RangeConflict(room_id, day, "changed", expected.value) from exc
            continue

        stmt = (
            update(RoomDay)
            .where(RoomDay.room_id == room_id, RoomDay.day == day, RoomDay.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if owner_id is not None:
            stmt = stmt.where(getattr(RoomDay, _OWNER_COLUMN[expected]) == owner_id)
        result = await session.execute(stmt)
        if result.rowcount != 1:
            raise RangeConflict(room_id, day, "changed", expected.value)

    return len(days)


async def _load_rows(
    session: AsyncSession,
    *,
    room_id: str,
    start: date,
    end: date,
    lock: bool = False,
) -> dict[date, RoomDay]:
    stmt = (
        select(RoomDay)
        .where(RoomDay.room_id == room_id, RoomDay.day >= start, RoomDay.day < end)
        .order_by(RoomDay.day.asc())
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return {row.day: row for row in result.scalars().all()}


def _snapshot(room_id: str, day: date, row: RoomDay | None) -> DaySnapshot:
    if row is None:
        return DaySnapshot(room_id=room_id, day=day, status=RoomDayStatus.AVAILABLE)
    return DaySnapshot(
        room_id=room_id,
        day=day,
        status=RoomDayStatus(row.status),
        booking_id=row.booking_id,
        hold_id=row.hold_id,
        block_id=row.block_id,
        blocked_by=row.blocked_by,
        blocked_reason=row.blocked_reason,
        blocked_at=row.blocked_at,
    )


def _status_values(
    new: RoomDayStatus,
    *,
    booking_id: str | None,
    hold_id: str | None,
    block_id: str | None,
    blocked_by: str | None,
    blocked_reason: str | None,
    blocked_at: datetime | None,
) -> dict[str, Any]:
    """Build the column values for ``new``, clearing fields owned by other statuses."""

    values: dict[str, Any] = {
        "status": new,
        "booking_id": None,
        "hold_id": None,
        "block_id": None,
        "blocked_by": None,
        "blocked_reason": None,
        "blocked_at": None,
    }
    if new is RoomDayStatus.BOOKED:
        if not booking_id:
            raise ValueError("booked days need a booking_id")
        values["booking_id"] = booking_id
    elif new is RoomDayStatus.HELD:
        if not hold_id:
            raise ValueError("held days need a hold_id")
        values["hold_id"] = hold_id
    elif new is RoomDayStatus.BLOCKED:
        if not (block_id and blocked_by and blocked_reason and blocked_at):
            raise ValueError("blocked days need block_id, blocked_by, blocked_reason and blocked_at")
        values.update(
            block_id=block_id,
            blocked_by=blocked_by,
            blocked_reason=blocked_reason,
            blocked_at=blocked_at,
        )
    return values
