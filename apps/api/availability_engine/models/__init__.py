"""Expose ORM models."""
from .booking import Booking, BookingStatus
from .hold import HoldStatus, ReservationHold
from .maintenance import MaintenanceBlock
from .room import Room
from .room_day import RoomDay, RoomDayStatus

__all__ = [
    "Booking",
    "BookingStatus",
    "HoldStatus",
    "MaintenanceBlock",
    "ReservationHold",
    "Room",
    "RoomDay",
    "RoomDayStatus",
]
