"""Maintenance block persistence helpers."""
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.maintenance import MaintenanceBlock


async def get_by_id(session: AsyncSession, block_id: str, *, lock: bool = False) -> MaintenanceBlock | None:
    """Return a maintenance block by identifier."""

    stmt = (
        select(MaintenanceBlock)
        .where(MaintenanceBlock.id == block_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_by_ids(session: AsyncSession, block_ids: set[str]) -> dict[str, MaintenanceBlock]:
    if not block_ids:
        return {}
    result = await session.execute(select(MaintenanceBlock).where(MaintenanceBlock.id.in_(block_ids)))
    return {block.id: block for block in result.scalars().all()}


async def create_block(
    session: AsyncSession,
    *,
    block_id: str,
    room_id: str,
    start_date: date,
    end_date: date,
    reason: str,
    blocked_by: str,
    blocked_at: datetime,
) -> MaintenanceBlock:
    """Persist a maintenance block."""

    block = MaintenanceBlock(
        id=block_id,
        room_id=room_id,
        start_date=start_date,
        end_date=end_date,
        reason=reason,
        blocked_by=blocked_by,
        blocked_at=blocked_at,
    )
    session.add(block)
    await session.flush()
    return block


async def claim_release(
    session: AsyncSession,
    *,
    block_id: str,
    released_by: str,
    released_at: datetime,
) -> bool:
    """Mark a block released; False when it was already released."""

    stmt = (
        update(MaintenanceBlock)
        .where(MaintenanceBlock.id == block_id, MaintenanceBlock.released_at.is_(None))
        .values(released_at=released_at, released_by=released_by)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1
