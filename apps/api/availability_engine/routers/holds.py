"""Reservation hold endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..core.security import CurrentUser, get_current_user
from ..schemas import holds as holds_schema
from ..services.engine import ReservationDesk
from .deps import get_engine

router = APIRouter()


@router.post("/holds", response_model=holds_schema.HoldResponse, status_code=status.HTTP_201_CREATED)
async def create_hold(
    payload: holds_schema.HoldCreateRequest,
    user: CurrentUser | None = Depends(get_current_user),
    engine: ReservationDesk = Depends(get_engine),
) -> holds_schema.HoldResponse:
    """Hold a room for ten minutes while the guest pays."""

    return await engine.create_hold(payload, user)


@router.get("/holds/{hold_id}", response_model=holds_schema.HoldResponse)
async def get_hold(
    hold_id: str,
    user: CurrentUser | None = Depends(get_current_user),
    engine: ReservationDesk = Depends(get_engine),
) -> holds_schema.HoldResponse:
    return await engine.get_hold(hold_id, user)


@router.delete("/holds/{hold_id}", response_model=holds_schema.ReleaseResponse)
async def release_hold(
    hold_id: str,
    user: CurrentUser | None = Depends(get_current_user),
    engine: ReservationDesk = Depends(get_engine),
) -> holds_schema.ReleaseResponse:
    """Release a hold early; repeated releases report the hold's final state."""

    return await engine.release_hold(hold_id, user)


@router.post("/holds/{hold_id}/payment", response_model=holds_schema.HoldResponse)
async def attach_payment(
    hold_id: str,
    payload: holds_schema.AttachPaymentRequest,
    user: CurrentUser | None = Depends(get_current_user),
    engine: ReservationDesk = Depends(get_engine),
) -> holds_schema.HoldResponse:
    return await engine.attach_payment(hold_id, payload.payment_reference, user)


@router.post("/holds/{hold_id}/capture", response_model=holds_schema.HoldResponse)
async def capture_payment(
    hold_id: str,
    payload: holds_schema.CapturePaymentRequest,
    user: CurrentUser | None = Depends(get_current_user),
    engine: ReservationDesk = Depends(get_engine),
) -> holds_schema.HoldResponse:
    """Charge the stay through the configured gateway and attach the reference."""

    return await engine.capture_payment(hold_id, payload.method, user)
