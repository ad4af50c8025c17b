"""Room model."""
from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Room(Base):
    """Bookable hotel room."""

    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    nightly_rate: Mapped[int] = mapped_column(Integer, nullable=False)
    max_guests: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    # Overrides the property-wide timezone for the checkout carve-out.
    timezone: Mapped[str | None] = mapped_column(String)
