"""Per-room, per-day availability ledger."""
from __future__ import annotations

from datetime import date, datetime
import enum

from sqlalchemy import Date, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class RoomDayStatus(str, enum.Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"
    HELD = "held"


class RoomDay(Base):
    """Availability state of one room on one calendar day.

    A missing row means the day is available. ``status`` decides which of the
    reference columns is populated; the others stay NULL.
    """

    __tablename__ = "room_days"

    room_id: Mapped[str] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), primary_key=True)
    day: Mapped[date] = mapped_column(Date, primary_key=True)
    status: Mapped[RoomDayStatus] = mapped_column(
        Enum(RoomDayStatus, name="room_day_status"), default=RoomDayStatus.AVAILABLE, nullable=False
    )
    booking_id: Mapped[str | None] = mapped_column(String, index=True)
    hold_id: Mapped[str | None] = mapped_column(String, index=True)
    block_id: Mapped[str | None] = mapped_column(String, index=True)
    blocked_by: Mapped[str | None] = mapped_column(String)
    blocked_reason: Mapped[str | None] = mapped_column(String)
    blocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
