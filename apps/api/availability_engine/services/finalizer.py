"""Booking finalizer.

Turns a live hold with a captured payment into a confirmed booking in one
transaction: claim the hold, swap its days ``held -> booked`` and insert the
booking. If the swap fails after the hold was claimed the calendar no longer
matches the hold; that is raised as ``FatalBookingError`` so the caller can
refund the captured payment.
"""
from __future__ import annotations

import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import errors
from ..core.clock import ensure_utc
from ..core.security import CurrentUser, require_user
from ..models.booking import Booking, BookingStatus
from ..models.hold import HoldStatus, ReservationHold
from ..models.room_day import RoomDayStatus
from ..repositories import bookings as bookings_repo
from ..repositories import calendar as calendar_repo
from ..repositories import holds as holds_repo
from ..schemas import bookings as schemas
from .availability import get_room, hold_is_live

logger = logging.getLogger(__name__)


async def process_atomic_booking(
    session: AsyncSession,
    *,
    payload: schemas.ProcessBookingRequest,
    user: CurrentUser | None,
    now: datetime,
) -> schemas.BookingResponse:
    """Confirm the booking for ``payload.hold_id`` paid with ``payload.payment_reference``.

    Replaying the same hold and reference returns the booking created the first
    time. A hold that has expired raises ``HoldExpiredError``.
    """

    actor = require_user(user, action="complete a booking")
    reference = payload.payment_reference.strip()
    if not reference:
        raise errors.ValidationError("A payment reference is required.")
    now = ensure_utc(now)

    async with session.begin():
        hold = await holds_repo.get_by_id(session, payload.hold_id, lock=True)
        if hold is None:
            raise errors.NotFoundError(
                f"Reservation {payload.hold_id} does not exist.",
                hint="Your reservation may have expired. Please re-select your dates.",
            )
        if hold.user_id != actor.user_id and not actor.is_admin:
            raise errors.ForbiddenError("This reservation belongs to another guest.")

        if hold.status == HoldStatus.CONSUMED:
            existing = await bookings_repo.get_by_hold_id(session, hold.id)
            if existing is not None and existing.payment_reference == reference:
                logger.info("Booking %s replayed for hold %s", existing.id, hold.id)
                return to_response(existing)
            raise errors.ConflictError(
                "This reservation has already been booked.", hint="Check your bookings before paying again."
            )
        if hold.payment_reference and hold.payment_reference != reference:
            raise errors.ValidationError("Payment reference does not match the one attached to this reservation.")
        if not hold_is_live(hold, now):
            raise await _expired(session, hold, reference)
        if await bookings_repo.get_by_payment_reference(session, reference) is not None:
            raise errors.ValidationError("This payment has already been used for another booking.")

        # Loses to the sweeper or a release that committed after our read.
        if not await holds_repo.claim_terminal_status(
            session, hold_id=hold.id, status=HoldStatus.CONSUMED, closed_at=now
        ):
            raise await _expired(session, hold, reference)

        room = await get_room(session, hold.room_id)
        booking_id = str(uuid4())
        try:
            await calendar_repo.transition_range(
                session,
                room_id=hold.room_id,
                start=hold.check_in,
                end=hold.check_out,
                expected=RoomDayStatus.HELD,
                new=RoomDayStatus.BOOKED,
                owner_id=hold.id,
                booking_id=booking_id,
            )
        except errors.RangeConflict as exc:
            logger.critical(
                "FATAL booking failure: payment %s captured for hold %s but room %s is %s on %s",
                reference,
                hold.id,
                hold.room_id,
                exc.current_status,
                exc.day,
            )
            raise errors.FatalBookingError(
                f"Payment {reference} was captured but room {hold.room_id} could not be booked.",
                payment_reference=reference,
                hold_id=hold.id,
            ) from exc

        booking = await bookings_repo.create_booking(
            session,
            booking_id=booking_id,
            room_id=hold.room_id,
            user_id=hold.user_id,
            check_in=hold.check_in,
            check_out=hold.check_out,
            guests=hold.guests,
            total_price=(hold.check_out - hold.check_in).days * room.nightly_rate,
            payment_reference=reference,
            hold_id=hold.id,
            created_at=now,
        )

    logger.info(
        "Booking %s confirmed on room %s for %s..%s (hold %s, payment %s)",
        booking.id,
        booking.room_id,
        booking.check_in,
        booking.check_out,
        hold.id,
        reference,
    )
    return to_response(booking)


async def cancel_booking(
    session: AsyncSession,
    *,
    booking_id: str,
    user: CurrentUser | None,
    reason: str,
    now: datetime,
) -> schemas.BookingResponse:
    """Cancel a confirmed booking and free its nights. Cancelling twice is a no-op."""

    actor = require_user(user, action="cancel a booking")
    now = ensure_utc(now)

    async with session.begin():
        booking = await bookings_repo.get_by_id(session, booking_id, lock=True)
        if booking is None:
            raise errors.NotFoundError(f"Booking {booking_id} does not exist.")
        if booking.user_id != actor.user_id and not actor.is_admin:
            raise errors.ForbiddenError("Only the guest who made this booking or an admin can cancel it.")

        if await bookings_repo.claim_cancellation(
            session,
            booking_id=booking_id,
            cancelled_by=actor.user_id,
            reason=reason.strip() or "Cancelled by request",
            cancelled_at=now,
        ):
            try:
                await calendar_repo.transition_range(
                    session,
                    room_id=booking.room_id,
                    start=booking.check_in,
                    end=booking.check_out,
                    expected=RoomDayStatus.BOOKED,
                    new=RoomDayStatus.AVAILABLE,
                    owner_id=booking.id,
                )
            except errors.RangeConflict as exc:
                logger.error(
                    "Calendar for room %s does not match booking %s: %s is %s",
                    booking.room_id,
                    booking.id,
                    exc.day,
                    exc.current_status,
                )
                raise errors.CalendarInconsistencyError(
                    f"Booking {booking.id} does not own its days on room {booking.room_id}."
                ) from exc
            logger.info("Booking %s on room %s cancelled by %s", booking.id, booking.room_id, actor.user_id)

        booking = await bookings_repo.get_by_id(session, booking_id)

    return to_response(booking)


async def list_bookings(session: AsyncSession, *, user: CurrentUser | None) -> schemas.BookingListResponse:
    """Return the caller's own bookings, newest first, cancelled ones included."""

    actor = require_user(user, action="view your bookings")
    async with session.begin():
        bookings = await bookings_repo.list_for_user(session, actor.user_id)
    return schemas.BookingListResponse(bookings=[to_response(booking) for booking in bookings], count=len(bookings))


async def _expired(session: AsyncSession, hold: ReservationHold, reference: str) -> errors.HoldExpiredError:
    stranded = (
        hold.payment_reference == reference
        and await bookings_repo.get_by_payment_reference(session, reference) is None
    )
    if stranded:
        logger.warning("Hold %s expired with captured payment %s attached", hold.id, reference)
    return errors.HoldExpiredError(
        f"Reservation {hold.id} expired before the booking completed.",
        payment_reference=reference if stranded else None,
    )


def to_response(booking: Booking) -> schemas.BookingResponse:
    return schemas.BookingResponse(
        booking_id=booking.id,
        room_id=booking.room_id,
        user_id=booking.user_id,
        check_in=booking.check_in,
        check_out=booking.check_out,
        guests=booking.guests,
        total_price=booking.total_price,
        payment_reference=booking.payment_reference,
        status=BookingStatus(booking.status),
        created_at=ensure_utc(booking.created_at),
        cancelled_at=ensure_utc(booking.cancelled_at) if booking.cancelled_at else None,
        cancellation_reason=booking.cancellation_reason,
    )
