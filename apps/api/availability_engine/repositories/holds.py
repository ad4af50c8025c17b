"""Reservation hold persistence helpers."""
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.hold import HoldStatus, ReservationHold


async def get_by_id(session: AsyncSession, hold_id: str, *, lock: bool = False) -> ReservationHold | None:
    """Return a hold by identifier, optionally locking the row."""

    stmt: Select[tuple[ReservationHold]] = (
        select(ReservationHold)
        .where(ReservationHold.id == hold_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_by_ids(session: AsyncSession, hold_ids: set[str]) -> dict[str, ReservationHold]:
    if not hold_ids:
        return {}
    result = await session.execute(select(ReservationHold).where(ReservationHold.id.in_(hold_ids)))
    return {hold.id: hold for hold in result.scalars().all()}


async def create_hold(
    session: AsyncSession,
    *,
    hold_id: str,
    room_id: str,
    user_id: str,
    check_in: date,
    check_out: date,
    guests: int,
    created_at: datetime,
    expires_at: datetime,
) -> ReservationHold:
    """Persist a new active hold."""

    hold = ReservationHold(
        id=hold_id,
        room_id=room_id,
        user_id=user_id,
        check_in=check_in,
        check_out=check_out,
        guests=guests,
        status=HoldStatus.ACTIVE,
        created_at=created_at,
        expires_at=expires_at,
    )
    session.add(hold)
    await session.flush()
    return hold


async def claim_terminal_status(
    session: AsyncSession,
    *,
    hold_id: str,
    status: HoldStatus,
    closed_at: datetime,
) -> bool:
    """Move an active hold to a terminal status.

    Returns False when the hold is no longer active, i.e. another terminal
    transition already won.
    """

    stmt = (
        update(ReservationHold)
        .where(ReservationHold.id == hold_id, ReservationHold.status == HoldStatus.ACTIVE)
        .values(status=status, closed_at=closed_at)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


async def list_due_ids(session: AsyncSession, *, now: datetime, limit: int) -> list[str]:
    """Return ids of active holds whose deadline has passed, oldest first."""

    stmt = (
        select(ReservationHold.id)
        .where(ReservationHold.status == HoldStatus.ACTIVE, ReservationHold.expires_at <= now)
        .order_by(ReservationHold.expires_at.asc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
