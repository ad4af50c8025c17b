"""Schemas for reservation holds."""
from __future__ import annotations

from datetime import date, datetime
import enum

from pydantic import BaseModel, Field

from ..models.hold import HoldStatus


class HoldCreateRequest(BaseModel):
    room_id: str
    check_in: date
    check_out: date
    guests: int = Field(default=1)


class HoldResponse(BaseModel):
    hold_id: str
    room_id: str
    user_id: str
    check_in: date
    check_out: date
    guests: int
    status: HoldStatus
    created_at: datetime
    expires_at: datetime
    seconds_remaining: int = 0
    payment_reference: str | None = None


class ReleaseOutcome(str, enum.Enum):
    RELEASED = "released"
    ALREADY_INACTIVE = "already_inactive"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


class ReleaseResponse(BaseModel):
    hold_id: str
    outcome: ReleaseOutcome


class ExpireOutcome(str, enum.Enum):
    EXPIRED = "expired"
    NOT_FOUND = "not_found"
    NOT_ACTIVE = "not_active"
    NOT_DUE = "not_due"


class AttachPaymentRequest(BaseModel):
    payment_reference: str = Field(min_length=1)


class CapturePaymentRequest(BaseModel):
    method: str = Field(min_length=1, description="Opaque payment method token from the client SDK")
