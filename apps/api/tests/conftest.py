"""Shared fixtures: an in-memory calendar database, rooms, users and a clock."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from availability_engine.core.config import Settings
from availability_engine.core.security import CurrentUser
from availability_engine.models import Room
from availability_engine.models.base import Base
from availability_engine.repositories import calendar as calendar_repo
from availability_engine.schemas.bookings import ProcessBookingRequest
from availability_engine.schemas.holds import HoldCreateRequest
from availability_engine.services.engine import AvailabilityEngine

# 09:00 in Lagos on the first day of the sample stay.
START = datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    def set(self, value: datetime) -> None:
        self.now = value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, schedule_hold_timers=False)


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def rooms(session_factory) -> list[str]:
    async with session_factory() as session:
        async with session.begin():
            session.add_all(
                [
                    Room(id="R1", name="Standard Queen", nightly_rate=50_000, max_guests=2),
                    Room(id="R2", name="Deluxe King", nightly_rate=80_000, max_guests=3),
                    Room(id="R3", name="Harbour Suite", nightly_rate=120_000, max_guests=4, timezone="UTC"),
                ]
            )
    return ["R1", "R2", "R3"]


@pytest_asyncio.fixture
async def engine(session_factory, settings, clock, rooms):
    availability_engine = AvailabilityEngine(session_factory, settings=settings, clock=clock)
    yield availability_engine
    await availability_engine.close()


@pytest.fixture
def guest_a() -> CurrentUser:
    return CurrentUser(user_id="guest-a")


@pytest.fixture
def guest_b() -> CurrentUser:
    return CurrentUser(user_id="guest-b")


@pytest.fixture
def admin() -> CurrentUser:
    return CurrentUser(user_id="admin-1", is_admin=True)


@pytest.fixture
def ledger(session_factory):
    """Return a coroutine function reading raw ledger statuses for a room."""

    async def read(room_id: str, start: date, end: date) -> dict[date, str]:
        async with session_factory() as session:
            async with session.begin():
                days = await calendar_repo.get_range(session, room_id=room_id, start=start, end=end)
        return {day.day: day.status.value for day in days}

    return read


@pytest.fixture
def book(engine):
    """Return a coroutine function that holds and books a stay in one go."""

    async def make(user: CurrentUser, room_id: str, check_in: date, check_out: date, reference: str):
        hold = await engine.create_hold(
            HoldCreateRequest(room_id=room_id, check_in=check_in, check_out=check_out), user
        )
        return await engine.process_atomic_booking(
            ProcessBookingRequest(payment_reference=reference, hold_id=hold.hold_id), user
        )

    return make
