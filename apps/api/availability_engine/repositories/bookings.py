"""Booking persistence helpers."""
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.booking import Booking, BookingStatus


async def get_by_id(session: AsyncSession, booking_id: str, *, lock: bool = False) -> Booking | None:
    """Return a booking by identifier."""

    stmt = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_by_hold_id(session: AsyncSession, hold_id: str) -> Booking | None:
    result = await session.execute(select(Booking).where(Booking.hold_id == hold_id))
    return result.scalar_one_or_none()


async def get_by_payment_reference(session: AsyncSession, payment_reference: str) -> Booking | None:
    result = await session.execute(select(Booking).where(Booking.payment_reference == payment_reference))
    return result.scalar_one_or_none()


async def list_by_ids(session: AsyncSession, booking_ids: set[str]) -> dict[str, Booking]:
    if not booking_ids:
        return {}
    result = await session.execute(select(Booking).where(Booking.id.in_(booking_ids)))
    return {booking.id: booking for booking in result.scalars().all()}


async def list_for_user(session: AsyncSession, user_id: str) -> list[Booking]:
    """Return every booking made by ``user_id``, newest first."""

    stmt = select(Booking).where(Booking.user_id == user_id).order_by(Booking.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_confirmed_checkouts(
    session: AsyncSession,
    *,
    room_id: str,
    start: date,
    end: date,
) -> list[Booking]:
    """Return confirmed bookings whose checkout date falls in ``[start, end)``."""

    stmt = (
        select(Booking)
        .where(
            Booking.room_id == room_id,
            Booking.status == BookingStatus.CONFIRMED,
            Booking.check_out >= start,
            Booking.check_out < end,
        )
        .order_by(Booking.check_out.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_booking(
    session: AsyncSession,
    *,
    booking_id: str,
    room_id: str,
    user_id: str,
    check_in: date,
    check_out: date,
    guests: int,
    total_price: int,
    payment_reference: str,
    hold_id: str,
    created_at: datetime,
) -> Booking:
    """Persist a confirmed booking and return it."""

    booking = Booking(
        id=booking_id,
        room_id=room_id,
        user_id=user_id,
        check_in=check_in,
        check_out=check_out,
        guests=guests,
        total_price=total_price,
        payment_reference=payment_reference,
        hold_id=hold_id,
        status=BookingStatus.CONFIRMED,
        created_at=created_at,
    )
    session.add(booking)
    await session.flush()
    return booking


async def claim_cancellation(
    session: AsyncSession,
    *,
    booking_id: str,
    cancelled_by: str,
    reason: str,
    cancelled_at: datetime,
) -> bool:
    """Cancel a confirmed booking; False when it was already cancelled."""

    stmt = (
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED)
        .values(
            status=BookingStatus.CANCELLED,
            cancelled_at=cancelled_at,
            cancelled_by=cancelled_by,
            cancellation_reason=reason,
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1
