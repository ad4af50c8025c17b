"""Maintenance blocker.

Admins take nights out of service one period at a time. Each period is its own
transaction: a period that collides with a booking, a live hold or an existing
block is reported back while the others still go through.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import errors
from ..core.clock import ensure_utc, local_today
from ..core.config import Settings
from ..core.security import CurrentUser, require_admin, require_user
from ..models.room_day import RoomDayStatus
from ..repositories import calendar as calendar_repo
from ..repositories import maintenance as maintenance_repo
from ..schemas import maintenance as schemas
from .availability import get_room, load_effective_days, room_timezone
from .holds import reclaim_lapsed_holds

logger = logging.getLogger(__name__)

_CONFLICT_REASONS = {
    RoomDayStatus.BOOKED.value: "Room is booked by a guest on this date.",
    RoomDayStatus.HELD.value: "Room is held by a guest completing checkout on this date.",
    RoomDayStatus.BLOCKED.value: "Date is already blocked for maintenance.",
}


async def block_dates(
    session: AsyncSession,
    *,
    payload: schemas.BlockDatesRequest,
    user: CurrentUser | None,
    now: datetime,
    settings: Settings,
) -> schemas.BlockResult:
    """Block every period that is fully available; collect conflicts for the rest."""

    actor = require_admin(user, action="block dates for maintenance")
    now = ensure_utc(now)
    async with session.begin():
        room = await get_room(session, payload.room_id)
    today = local_today(now, room_timezone(room, settings))

    result = schemas.BlockResult(room_id=payload.room_id)
    for period in payload.periods:
        problem = _period_problem(period, today=today, settings=settings)
        if problem is not None:
            result.conflicts.append(problem)
            continue

        block_id = str(uuid4())
        try:
            async with session.begin():
                await reclaim_lapsed_holds(
                    session, room_id=payload.room_id, start=period.start_date, end=period.end_date, now=now
                )
                await calendar_repo.transition_range(
                    session,
                    room_id=payload.room_id,
                    start=period.start_date,
                    end=period.end_date,
                    expected=RoomDayStatus.AVAILABLE,
                    new=RoomDayStatus.BLOCKED,
                    block_id=block_id,
                    blocked_by=actor.user_id,
                    blocked_reason=period.reason.strip(),
                    blocked_at=now,
                )
                await maintenance_repo.create_block(
                    session,
                    block_id=block_id,
                    room_id=payload.room_id,
                    start_date=period.start_date,
                    end_date=period.end_date,
                    reason=period.reason.strip(),
                    blocked_by=actor.user_id,
                    blocked_at=now,
                )
        except errors.RangeConflict as exc:
            logger.info(
                "Maintenance block on room %s for %s..%s conflicts on %s (%s)",
                payload.room_id,
                period.start_date,
                period.end_date,
                exc.day,
                exc.current_status,
            )
            result.conflicts.append(
                schemas.BlockConflict(
                    start_date=period.start_date,
                    end_date=period.end_date,
                    day=exc.day,
                    current_status=exc.current_status,
                    reason=_CONFLICT_REASONS.get(exc.current_status, "Availability changed while blocking."),
                )
            )
            continue

        result.block_ids.append(block_id)
        result.blocked_periods += 1
        result.blocked_days += (period.end_date - period.start_date).days

    logger.info(
        "Maintenance batch on room %s by %s: %d period(s) blocked, %d day(s), %d conflict(s)",
        payload.room_id,
        actor.user_id,
        result.blocked_periods,
        result.blocked_days,
        len(result.conflicts),
    )
    return result


async def validate_block(
    session: AsyncSession,
    *,
    payload: schemas.BlockDatesRequest,
    user: CurrentUser | None,
    now: datetime,
    settings: Settings,
) -> schemas.BlockValidation:
    """Dry run of :func:`block_dates`; nothing is written."""

    require_admin(user, action="plan maintenance")
    conflicts: list[schemas.BlockConflict] = []
    warnings: list[schemas.BlockWarning] = []

    async with session.begin():
        room = await get_room(session, payload.room_id)
        today = local_today(now, room_timezone(room, settings))
        for period in payload.periods:
            problem = _period_problem(period, today=today, settings=settings)
            if problem is not None:
                conflicts.append(problem)
                continue
            days, _ = await load_effective_days(
                session, room_id=payload.room_id, start=period.start_date, end=period.end_date, now=now
            )
            for day in days:
                if day.status is RoomDayStatus.BLOCKED:
                    warnings.append(schemas.BlockWarning(day=day.day, message=_CONFLICT_REASONS[day.status.value]))
                elif day.status is not RoomDayStatus.AVAILABLE:
                    conflicts.append(
                        schemas.BlockConflict(
                            start_date=period.start_date,
                            end_date=period.end_date,
                            day=day.day,
                            current_status=day.status.value,
                            reason=_CONFLICT_REASONS[day.status.value],
                        )
                    )

    return schemas.BlockValidation(
        room_id=payload.room_id, valid=not conflicts, conflicts=conflicts, warnings=warnings
    )


async def unblock(
    session: AsyncSession,
    *,
    block_id: str,
    user: CurrentUser | None,
    now: datetime,
) -> schemas.UnblockResponse:
    """Return a block's nights to service. Allowed for the original blocker or an admin."""

    actor = require_user(user, action="remove a maintenance block")
    now = ensure_utc(now)

    async with session.begin():
        block = await maintenance_repo.get_by_id(session, block_id, lock=True)
        if block is None:
            raise errors.NotFoundError(f"Maintenance block {block_id} does not exist.")
        if block.blocked_by != actor.user_id and not actor.is_admin:
            raise errors.ForbiddenError("Only the admin who created this block can remove it.")
        if not await maintenance_repo.claim_release(
            session, block_id=block_id, released_by=actor.user_id, released_at=now
        ):
            return schemas.UnblockResponse(block_id=block_id, outcome=schemas.UnblockOutcome.ALREADY_RELEASED)
        try:
            await calendar_repo.transition_range(
                session,
                room_id=block.room_id,
                start=block.start_date,
                end=block.end_date,
                expected=RoomDayStatus.BLOCKED,
                new=RoomDayStatus.AVAILABLE,
                owner_id=block.id,
            )
        except errors.RangeConflict as exc:
            logger.error(
                "Calendar for room %s does not match block %s: %s is %s",
                block.room_id,
                block.id,
                exc.day,
                exc.current_status,
            )
            raise errors.CalendarInconsistencyError(
                f"Block {block.id} does not own its days on room {block.room_id}."
            ) from exc

    logger.info("Maintenance block %s on room %s removed by %s", block_id, block.room_id, actor.user_id)
    return schemas.UnblockResponse(block_id=block_id, outcome=schemas.UnblockOutcome.UNBLOCKED)


def _period_problem(
    period: schemas.BlockPeriod,
    *,
    today: date,
    settings: Settings,
) -> schemas.BlockConflict | None:
    """Return a conflict entry for a period that cannot be blocked as submitted."""

    reason: str | None = None
    if period.end_date <= period.start_date:
        reason = "End date must be after start date."
    elif (period.end_date - period.start_date).days > settings.max_range_days:
        reason = f"Periods cannot exceed {settings.max_range_days} days."
    elif period.start_date < today:
        reason = "Cannot modify dates in the past."
    elif not period.reason.strip():
        reason = "A reason is required for maintenance blocks."
    if reason is None:
        return None
    return schemas.BlockConflict(start_date=period.start_date, end_date=period.end_date, reason=reason)
