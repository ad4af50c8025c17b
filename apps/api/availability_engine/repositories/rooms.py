"""Room lookups."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.room import Room


async def get_by_id(session: AsyncSession, room_id: str) -> Room | None:
    """Return a room by identifier."""

    return await session.get(Room, room_id)


async def list_by_ids(session: AsyncSession, room_ids: list[str]) -> dict[str, Room]:
    """Return the rooms that exist among ``room_ids`` keyed by id."""

    if not room_ids:
        return {}
    result = await session.execute(select(Room).where(Room.id.in_(room_ids)))
    return {room.id: room for room in result.scalars().all()}
