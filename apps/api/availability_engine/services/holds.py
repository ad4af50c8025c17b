"""Hold manager.

A hold is a ten minute, exclusive claim on a room's nights while the guest pays.
Creating one moves the days ``available -> held``; releasing or expiring it
moves them back. Every terminal transition first claims the hold row with a
conditional update, so when expiry races a release or a booking exactly one
side wins and the other becomes a no-op.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import errors
from ..core.clock import ensure_utc, local_today
from ..core.config import Settings
from ..core.security import CurrentUser, require_user
from ..models.hold import HoldStatus, ReservationHold
from ..models.room_day import RoomDayStatus
from ..repositories import calendar as calendar_repo
from ..repositories import holds as holds_repo
from ..schemas import holds as schemas
from .availability import (
    evaluate_availability,
    get_room,
    hold_is_live,
    room_timezone,
    validate_period,
)

logger = logging.getLogger(__name__)


async def create_hold(
    session: AsyncSession,
    *,
    payload: schemas.HoldCreateRequest,
    user: CurrentUser | None,
    now: datetime,
    settings: Settings,
) -> schemas.HoldResponse:
    """Place a hold on ``[check_in, check_out)`` for the current user.

    Raises ``ConflictError`` (with a fresh availability result attached) when the
    nights are taken, including when a concurrent hold wins the swap first.
    """

    actor = require_user(user, action="reserve a room")
    now = ensure_utc(now)
    validate_period(payload.check_in, payload.check_out, settings=settings)

    try:
        async with session.begin():
            room = await get_room(session, payload.room_id)
            if payload.guests < 1 or payload.guests > room.max_guests:
                raise errors.ValidationError(
                    f"Room {room.id} accepts between 1 and {room.max_guests} guests.",
                    hint="Adjust the number of guests.",
                )
            if payload.check_in < local_today(now, room_timezone(room, settings)):
                raise errors.ValidationError(
                    "Cannot reserve dates in the past.", hint="Pick a check-in date from today onwards."
                )

            await reclaim_lapsed_holds(
                session,
                room_id=payload.room_id,
                start=payload.check_in,
                end=payload.check_out,
                now=now,
            )

            availability = await evaluate_availability(
                session,
                room_id=payload.room_id,
                check_in=payload.check_in,
                check_out=payload.check_out,
                now=now,
                settings=settings,
            )
            if not availability.available:
                raise errors.ConflictError(
                    availability.reason or "Room is not available for the selected dates.",
                    availability=availability,
                )

            hold_id = str(uuid4())
            await calendar_repo.transition_range(
                session,
                room_id=payload.room_id,
                start=payload.check_in,
                end=payload.check_out,
                expected=RoomDayStatus.AVAILABLE,
                new=RoomDayStatus.HELD,
                hold_id=hold_id,
            )
            hold = await holds_repo.create_hold(
                session,
                hold_id=hold_id,
                room_id=payload.room_id,
                user_id=actor.user_id,
                check_in=payload.check_in,
                check_out=payload.check_out,
                guests=payload.guests,
                created_at=now,
                expires_at=now + timedelta(minutes=settings.hold_ttl_minutes),
            )
    except errors.RangeConflict as exc:
        logger.info(
            "Hold on room %s for %s..%s lost the race on %s (%s)",
            payload.room_id,
            payload.check_in,
            payload.check_out,
            exc.day,
            exc.current_status,
        )
        async with session.begin():
            fresh = await evaluate_availability(
                session,
                room_id=payload.room_id,
                check_in=payload.check_in,
                check_out=payload.check_out,
                now=now,
                settings=settings,
            )
        raise errors.ConflictError(
            "Another guest reserved some of these nights a moment ago.", availability=fresh
        ) from exc

    logger.info(
        "Hold %s created on room %s for %s..%s by %s, expires %s",
        hold.id,
        hold.room_id,
        hold.check_in,
        hold.check_out,
        hold.user_id,
        hold.expires_at.isoformat(),
    )
    return to_response(hold, now)


async def get_hold(
    session: AsyncSession,
    *,
    hold_id: str,
    user: CurrentUser | None,
    now: datetime,
) -> schemas.HoldResponse:
    actor = require_user(user, action="view a reservation")
    async with session.begin():
        hold = await _get_owned_hold(session, hold_id=hold_id, actor=actor)
    return to_response(hold, now)


async def attach_payment(
    session: AsyncSession,
    *,
    hold_id: str,
    payment_reference: str,
    user: CurrentUser | None,
    now: datetime,
) -> schemas.HoldResponse:
    """Record the captured payment reference on a live hold."""

    actor = require_user(user, action="pay for a reservation")
    reference = payment_reference.strip()
    if not reference:
        raise errors.ValidationError("A payment reference is required.")

    async with session.begin():
        hold = await _get_owned_hold(session, hold_id=hold_id, actor=actor, lock=True)
        if not hold_is_live(hold, now):
            raise errors.HoldExpiredError(f"Reservation {hold_id} is no longer active.")
        if hold.payment_reference and hold.payment_reference != reference:
            raise errors.ValidationError(
                "A different payment is already attached to this reservation.",
                hint="Contact support if you were charged twice.",
            )
        hold.payment_reference = reference
        session.add(hold)
    return to_response(hold, now)


async def release_hold(
    session: AsyncSession,
    *,
    hold_id: str,
    user: CurrentUser | None,
    now: datetime,
) -> schemas.ReleaseResponse:
    """Give the nights back early. Releasing twice is a no-op."""

    actor = require_user(user, action="release a reservation")
    now = ensure_utc(now)

    async with session.begin():
        hold = await holds_repo.get_by_id(session, hold_id, lock=True)
        if hold is None:
            return schemas.ReleaseResponse(hold_id=hold_id, outcome=schemas.ReleaseOutcome.NOT_FOUND)
        if hold.user_id != actor.user_id and not actor.is_admin:
            raise errors.ForbiddenError("Only the guest who made this reservation can release it.")

        if hold.status == HoldStatus.EXPIRED:
            return schemas.ReleaseResponse(hold_id=hold_id, outcome=schemas.ReleaseOutcome.EXPIRED)
        if hold.status != HoldStatus.ACTIVE:
            return schemas.ReleaseResponse(hold_id=hold_id, outcome=schemas.ReleaseOutcome.ALREADY_INACTIVE)

        terminal = HoldStatus.EXPIRED if now >= ensure_utc(hold.expires_at) else HoldStatus.RELEASED
        if not await holds_repo.claim_terminal_status(session, hold_id=hold_id, status=terminal, closed_at=now):
            return schemas.ReleaseResponse(hold_id=hold_id, outcome=schemas.ReleaseOutcome.ALREADY_INACTIVE)
        await _revert_hold_days(session, hold)

    logger.info("Hold %s %s by %s", hold_id, terminal.value, actor.user_id)
    if terminal is HoldStatus.EXPIRED:
        return schemas.ReleaseResponse(hold_id=hold_id, outcome=schemas.ReleaseOutcome.EXPIRED)
    return schemas.ReleaseResponse(hold_id=hold_id, outcome=schemas.ReleaseOutcome.RELEASED)


async def expire_hold(session: AsyncSession, *, hold_id: str, now: datetime) -> schemas.ExpireOutcome:
    """Expire a hold whose deadline has passed.

    Safe to call from both the per-hold timer and the periodic sweep; whichever
    arrives second (or after a release/booking) gets a non-expired outcome.
    """

    now = ensure_utc(now)
    async with session.begin():
        hold = await holds_repo.get_by_id(session, hold_id, lock=True)
        if hold is None:
            return schemas.ExpireOutcome.NOT_FOUND
        if hold.status != HoldStatus.ACTIVE:
            return schemas.ExpireOutcome.NOT_ACTIVE
        if now < ensure_utc(hold.expires_at):
            return schemas.ExpireOutcome.NOT_DUE
        if not await holds_repo.claim_terminal_status(
            session, hold_id=hold_id, status=HoldStatus.EXPIRED, closed_at=now
        ):
            return schemas.ExpireOutcome.NOT_ACTIVE
        await _revert_hold_days(session, hold)

    logger.info("Hold %s on room %s expired", hold_id, hold.room_id)
    return schemas.ExpireOutcome.EXPIRED


async def sweep_expired(session: AsyncSession, *, now: datetime, limit: int) -> list[str]:
    """Expire up to ``limit`` overdue holds, one transaction each."""

    now = ensure_utc(now)
    async with session.begin():
        due = await holds_repo.list_due_ids(session, now=now, limit=limit)

    expired: list[str] = []
    for hold_id in due:
        if await expire_hold(session, hold_id=hold_id, now=now) is schemas.ExpireOutcome.EXPIRED:
            expired.append(hold_id)
    if expired:
        logger.info("Expiry sweep reverted %d hold(s)", len(expired))
    return expired


def to_response(hold: ReservationHold, now: datetime) -> schemas.HoldResponse:
    """Render a hold with its effective status at ``now``."""

    expires_at = ensure_utc(hold.expires_at)
    status = HoldStatus(hold.status)
    if status is HoldStatus.ACTIVE and ensure_utc(now) >= expires_at:
        status = HoldStatus.EXPIRED
    remaining = (expires_at - ensure_utc(now)).total_seconds() if status is HoldStatus.ACTIVE else 0
    return schemas.HoldResponse(
        hold_id=hold.id,
        room_id=hold.room_id,
        user_id=hold.user_id,
        check_in=hold.check_in,
        check_out=hold.check_out,
        guests=hold.guests,
        status=status,
        created_at=ensure_utc(hold.created_at),
        expires_at=expires_at,
        seconds_remaining=max(0, int(remaining)),
        payment_reference=hold.payment_reference,
    )


async def _get_owned_hold(
    session: AsyncSession,
    *,
    hold_id: str,
    actor: CurrentUser,
    lock: bool = False,
) -> ReservationHold:
    hold = await holds_repo.get_by_id(session, hold_id, lock=lock)
    if hold is None:
        raise errors.NotFoundError(f"Reservation {hold_id} does not exist.")
    if hold.user_id != actor.user_id and not actor.is_admin:
        raise errors.ForbiddenError("This reservation belongs to another guest.")
    return hold


async def _revert_hold_days(session: AsyncSession, hold: ReservationHold) -> None:
    """Move the hold's days ``held -> available``; they must still belong to it."""

    try:
        await calendar_repo.transition_range(
            session,
            room_id=hold.room_id,
            start=hold.check_in,
            end=hold.check_out,
            expected=RoomDayStatus.HELD,
            new=RoomDayStatus.AVAILABLE,
            owner_id=hold.id,
        )
    except errors.RangeConflict as exc:
        logger.error(
            "Calendar for room %s does not match hold %s: %s is %s",
            hold.room_id,
            hold.id,
            exc.day,
            exc.current_status,
        )
        raise errors.CalendarInconsistencyError(
            f"Hold {hold.id} does not own its days on room {hold.room_id}."
        ) from exc


async def reclaim_lapsed_holds(
    session: AsyncSession,
    *,
    room_id: str,
    start: date,
    end: date,
    now: datetime,
) -> None:
    """Expire overlapping holds whose deadline passed but which the sweep has not reached."""

    days = await calendar_repo.get_range(session, room_id=room_id, start=start, end=end)
    hold_ids = {day.hold_id for day in days if day.status is RoomDayStatus.HELD and day.hold_id}
    holds = await holds_repo.list_by_ids(session, hold_ids)

    for hold_id in sorted(hold_ids):
        hold = holds.get(hold_id)
        if hold is not None and hold_is_live(hold, now):
            continue
        if hold is None:
            logger.error("Room %s has days held by unknown hold %s", room_id, hold_id)
            raise errors.CalendarInconsistencyError(f"Held days reference missing hold {hold_id}.")
        # A hold that already ended had its days freed by whoever ended it.
        if hold.status != HoldStatus.ACTIVE:
            continue
        claimed = await holds_repo.claim_terminal_status(
            session, hold_id=hold_id, status=HoldStatus.EXPIRED, closed_at=now
        )
        if not claimed:
            logger.info("Hold %s was closed concurrently; leaving its nights to that transition", hold_id)
            continue
        await _revert_hold_days(session, hold)
        logger.info("Hold %s on room %s expired while reclaiming its nights", hold_id, hold.room_id)
