"""Schemas for maintenance blocking."""
from __future__ import annotations

from datetime import date
import enum

from pydantic import BaseModel, Field


class BlockPeriod(BaseModel):
    start_date: date
    end_date: date
    reason: str


class BlockDatesRequest(BaseModel):
    room_id: str
    periods: list[BlockPeriod] = Field(min_length=1)


class BlockConflict(BaseModel):
    start_date: date
    end_date: date
    day: date | None = None
    current_status: str | None = None
    reason: str


class BlockWarning(BaseModel):
    day: date
    message: str


class BlockResult(BaseModel):
    room_id: str
    block_ids: list[str] = Field(default_factory=list)
    blocked_periods: int = 0
    blocked_days: int = 0
    conflicts: list[BlockConflict] = Field(default_factory=list)


class BlockValidation(BaseModel):
    room_id: str
    valid: bool
    conflicts: list[BlockConflict] = Field(default_factory=list)
    warnings: list[BlockWarning] = Field(default_factory=list)


class UnblockOutcome(str, enum.Enum):
    UNBLOCKED = "unblocked"
    ALREADY_RELEASED = "already_released"


class UnblockResponse(BaseModel):
    block_id: str
    outcome: UnblockOutcome
