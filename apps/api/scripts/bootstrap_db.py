"""Create the database schema and seed sample rooms for development."""
from __future__ import annotations

import asyncio

from availability_engine.db.session import SessionLocal, engine
from availability_engine.models import Room
from availability_engine.models.base import Base

ROOMS = [
	{"id": "room-101", "name": "Standard Queen 101", "nightly_rate": 45_000, "max_guests": 2},
	{"id": "room-102", "name": "Standard Twin 102", "nightly_rate": 45_000, "max_guests": 2},
	{"id": "room-201", "name": "Deluxe King 201", "nightly_rate": 72_000, "max_guests": 3},
	{"id": "room-301", "name": "Family Suite 301", "nightly_rate": 110_000, "max_guests": 5},
	{"id": "room-penthouse", "name": "Lagoon Penthouse", "nightly_rate": 250_000, "max_guests": 4},
]


async def create_schema() -> None:
	"""Create the database schema if it does not already exist."""

	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)


async def seed_rooms() -> None:
	"""Insert or update the demo rooms. Calendar rows are created on demand."""

	async with SessionLocal() as session:
		async with session.begin():
			for room_data in ROOMS:
				room = await session.get(Room, room_data["id"])
				if room is None:
					session.add(Room(**room_data))
				else:
					room.name = room_data["name"]
					room.nightly_rate = room_data["nightly_rate"]
					room.max_guests = room_data["max_guests"]


async def main() -> None:
	await create_schema()
	await seed_rooms()
	await engine.dispose()
	print("Database schema ensured and demo rooms seeded.")


if __name__ == "__main__":
	asyncio.run(main())
