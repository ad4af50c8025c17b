"""The availability engine.

``AvailabilityEngine`` is built once per process with its collaborators and
opens a fresh session for every operation. Callers that only need part of it
depend on one of the narrow protocols at the bottom of this module.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core import errors
from ..core.clock import Clock, ensure_utc, utc_now
from ..core.config import Settings, get_settings
from ..core.security import CurrentUser, require_user
from ..models.hold import HoldStatus
from ..schemas import availability as availability_schemas
from ..schemas import bookings as booking_schemas
from ..schemas import holds as hold_schemas
from ..schemas import maintenance as maintenance_schemas
from ..schemas.occupancy import OccupancyData
from . import availability, finalizer, holds, maintenance, occupancy
from .payments import PaymentDeclined, PaymentGateway
from .sweeper import HoldExpiryScheduler

logger = logging.getLogger(__name__)


class AvailabilityEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        settings: Settings | None = None,
        clock: Clock = utc_now,
        payment_gateway: PaymentGateway | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self._clock = clock
        self._payments = payment_gateway
        self.scheduler = HoldExpiryScheduler(self.expire_hold) if self.settings.schedule_hold_timers else None

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    # -- availability ---------------------------------------------------

    async def check_availability(
        self, room_id: str, check_in: date, check_out: date
    ) -> availability_schemas.AvailabilityResult:
        async with self._session_factory() as session:
            return await availability.check_availability(
                session,
                room_id=room_id,
                check_in=check_in,
                check_out=check_out,
                now=self.now(),
                settings=self.settings,
            )

    async def get_next_available(
        self, room_id: str, duration: int, *, start_from: date | None = None
    ) -> date | None:
        async with self._session_factory() as session:
            return await availability.get_next_available(
                session,
                room_id=room_id,
                duration=duration,
                now=self.now(),
                settings=self.settings,
                start_from=start_from,
            )

    async def get_calendar(self, room_id: str, start: date, end: date) -> availability_schemas.CalendarResponse:
        async with self._session_factory() as session:
            return await availability.get_calendar(
                session, room_id=room_id, start=start, end=end, now=self.now(), settings=self.settings
            )

    async def get_bulk_availability(
        self, room_ids: list[str], start: date, end: date
    ) -> availability_schemas.BulkAvailabilityResponse:
        async with self._session_factory() as session:
            return await availability.get_bulk_availability(
                session, room_ids=room_ids, start=start, end=end, now=self.now(), settings=self.settings
            )

    async def get_occupancy_rate(self, room_id: str, start: date, end: date) -> OccupancyData:
        async with self._session_factory() as session:
            return await occupancy.get_occupancy_rate(
                session, room_id=room_id, start=start, end=end, now=self.now(), settings=self.settings
            )

    # -- holds ----------------------------------------------------------

    async def create_hold(
        self, payload: hold_schemas.HoldCreateRequest, user: CurrentUser | None
    ) -> hold_schemas.HoldResponse:
        now = self.now()
        async with self._session_factory() as session:
            hold = await holds.create_hold(session, payload=payload, user=user, now=now, settings=self.settings)
        if self.scheduler is not None:
            self.scheduler.schedule(hold.hold_id, (hold.expires_at - now).total_seconds())
        return hold

    async def get_hold(self, hold_id: str, user: CurrentUser | None) -> hold_schemas.HoldResponse:
        async with self._session_factory() as session:
            return await holds.get_hold(session, hold_id=hold_id, user=user, now=self.now())

    async def release_hold(self, hold_id: str, user: CurrentUser | None) -> hold_schemas.ReleaseResponse:
        async with self._session_factory() as session:
            result = await holds.release_hold(session, hold_id=hold_id, user=user, now=self.now())
        self._cancel_timer(hold_id)
        return result

    async def attach_payment(
        self, hold_id: str, payment_reference: str, user: CurrentUser | None
    ) -> hold_schemas.HoldResponse:
        async with self._session_factory() as session:
            return await holds.attach_payment(
                session, hold_id=hold_id, payment_reference=payment_reference, user=user, now=self.now()
            )

    async def capture_payment(self, hold_id: str, method: str, user: CurrentUser | None) -> hold_schemas.HoldResponse:
        """Charge nights x nightly rate for a live hold and attach the reference."""

        require_user(user, action="pay for a reservation")
        if self._payments is None:
            raise errors.EngineError("Payment processing is not configured.")

        hold = await self.get_hold(hold_id, user)
        if hold.status is not HoldStatus.ACTIVE:
            raise errors.HoldExpiredError(f"Reservation {hold_id} is no longer active.")
        async with self._session_factory() as session:
            async with session.begin():
                room = await availability.get_room(session, hold.room_id)
        amount = (hold.check_out - hold.check_in).days * room.nightly_rate

        try:
            reference = await self._payments.capture(amount, method)
        except PaymentDeclined as exc:
            logger.info("Payment for hold %s declined: %s", hold_id, exc)
            raise errors.PaymentFailedError(f"Payment was declined: {exc}") from exc

        try:
            return await self.attach_payment(hold_id, reference, user)
        except errors.EngineError:
            await self._refund(reference, hold_id, reason="Reservation ended before payment was recorded")
            raise

    async def expire_hold(self, hold_id: str) -> hold_schemas.ExpireOutcome:
        async with self._session_factory() as session:
            return await holds.expire_hold(session, hold_id=hold_id, now=self.now())

    async def sweep_expired(self) -> list[str]:
        async with self._session_factory() as session:
            expired = await holds.sweep_expired(
                session, now=self.now(), limit=self.settings.expiry_sweep_batch_size
            )
        for hold_id in expired:
            self._cancel_timer(hold_id)
        return expired

    # -- bookings -------------------------------------------------------

    async def process_atomic_booking(
        self, payload: booking_schemas.ProcessBookingRequest, user: CurrentUser | None
    ) -> booking_schemas.BookingResponse:
        """Finalize a paid hold; on a FATAL failure the captured payment is refunded."""

        try:
            async with self._session_factory() as session:
                booking = await finalizer.process_atomic_booking(
                    session, payload=payload, user=user, now=self.now()
                )
        except errors.FatalBookingError as exc:
            exc.refund_requested = await self._refund(
                exc.payment_reference, exc.hold_id, reason="Booking could not be committed"
            )
            raise
        except errors.HoldExpiredError as exc:
            if exc.payment_reference is not None:
                exc.refund_requested = await self._refund(
                    exc.payment_reference, payload.hold_id, reason="Reservation expired before the booking completed"
                )
            raise
        self._cancel_timer(payload.hold_id)
        return booking

    async def cancel_booking(
        self, booking_id: str, user: CurrentUser | None, reason: str
    ) -> booking_schemas.BookingResponse:
        async with self._session_factory() as session:
            return await finalizer.cancel_booking(
                session, booking_id=booking_id, user=user, reason=reason, now=self.now()
            )

    async def list_bookings(self, user: CurrentUser | None) -> booking_schemas.BookingListResponse:
        async with self._session_factory() as session:
            return await finalizer.list_bookings(session, user=user)

    # -- maintenance ----------------------------------------------------

    async def block_dates(
        self, payload: maintenance_schemas.BlockDatesRequest, user: CurrentUser | None
    ) -> maintenance_schemas.BlockResult:
        async with self._session_factory() as session:
            return await maintenance.block_dates(
                session, payload=payload, user=user, now=self.now(), settings=self.settings
            )

    async def validate_block(
        self, payload: maintenance_schemas.BlockDatesRequest, user: CurrentUser | None
    ) -> maintenance_schemas.BlockValidation:
        async with self._session_factory() as session:
            return await maintenance.validate_block(
                session, payload=payload, user=user, now=self.now(), settings=self.settings
            )

    async def unblock(self, block_id: str, user: CurrentUser | None) -> maintenance_schemas.UnblockResponse:
        async with self._session_factory() as session:
            return await maintenance.unblock(session, block_id=block_id, user=user, now=self.now())

    async def close(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.close()

    def _cancel_timer(self, hold_id: str) -> None:
        if self.scheduler is not None:
            self.scheduler.cancel(hold_id)

    async def _refund(self, reference: str, hold_id: str, *, reason: str) -> bool:
        if self._payments is None:
            logger.critical("No payment gateway configured; refund payment %s for hold %s manually", reference, hold_id)
            return False
        try:
            await self._payments.refund(reference, reason)
        except Exception:
            logger.exception("Refund of payment %s for hold %s failed; reconcile manually", reference, hold_id)
            return False
        logger.warning("Refunded payment %s for hold %s: %s", reference, hold_id, reason)
        return True


class AvailabilityReader(Protocol):
    async def check_availability(
        self, room_id: str, check_in: date, check_out: date
    ) -> availability_schemas.AvailabilityResult: ...

    async def get_next_available(
        self, room_id: str, duration: int, *, start_from: date | None = None
    ) -> date | None: ...

    async def get_calendar(self, room_id: str, start: date, end: date) -> availability_schemas.CalendarResponse: ...

    async def get_bulk_availability(
        self, room_ids: list[str], start: date, end: date
    ) -> availability_schemas.BulkAvailabilityResponse: ...

    async def get_occupancy_rate(self, room_id: str, start: date, end: date) -> OccupancyData: ...


class ReservationDesk(Protocol):
    async def create_hold(
        self, payload: hold_schemas.HoldCreateRequest, user: CurrentUser | None
    ) -> hold_schemas.HoldResponse: ...

    async def get_hold(self, hold_id: str, user: CurrentUser | None) -> hold_schemas.HoldResponse: ...

    async def release_hold(self, hold_id: str, user: CurrentUser | None) -> hold_schemas.ReleaseResponse: ...

    async def attach_payment(
        self, hold_id: str, payment_reference: str, user: CurrentUser | None
    ) -> hold_schemas.HoldResponse: ...

    async def capture_payment(
        self, hold_id: str, method: str, user: CurrentUser | None
    ) -> hold_schemas.HoldResponse: ...

    async def process_atomic_booking(
        self, payload: booking_schemas.ProcessBookingRequest, user: CurrentUser | None
    ) -> booking_schemas.BookingResponse: ...

    async def cancel_booking(
        self, booking_id: str, user: CurrentUser | None, reason: str
    ) -> booking_schemas.BookingResponse: ...

    async def list_bookings(self, user: CurrentUser | None) -> booking_schemas.BookingListResponse: ...


class MaintenanceDesk(Protocol):
    async def block_dates(
        self, payload: maintenance_schemas.BlockDatesRequest, user: CurrentUser | None
    ) -> maintenance_schemas.BlockResult: ...

    async def validate_block(
        self, payload: maintenance_schemas.BlockDatesRequest, user: CurrentUser | None
    ) -> maintenance_schemas.BlockValidation: ...

    async def unblock(self, block_id: str, user: CurrentUser | None) -> maintenance_schemas.UnblockResponse: ...
