"""Maintenance blocking endpoints (admin)."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..core.security import CurrentUser, get_current_user
from ..schemas import maintenance as maintenance_schema
from ..services.engine import MaintenanceDesk
from .deps import get_engine

router = APIRouter()


@router.post("/maintenance/blocks", response_model=maintenance_schema.BlockResult)
async def block_dates(
    payload: maintenance_schema.BlockDatesRequest,
    user: CurrentUser | None = Depends(get_current_user),
    engine: MaintenanceDesk = Depends(get_engine),
) -> maintenance_schema.BlockResult:
    """Block each period that is free; conflicting periods are listed in the result."""

    return await engine.block_dates(payload, user)


@router.post("/maintenance/validate", response_model=maintenance_schema.BlockValidation)
async def validate_block(
    payload: maintenance_schema.BlockDatesRequest,
    user: CurrentUser | None = Depends(get_current_user),
    engine: MaintenanceDesk = Depends(get_engine),
) -> maintenance_schema.BlockValidation:
    return await engine.validate_block(payload, user)


@router.delete("/maintenance/blocks/{block_id}", response_model=maintenance_schema.UnblockResponse)
async def unblock(
    block_id: str,
    user: CurrentUser | None = Depends(get_current_user),
    engine: MaintenanceDesk = Depends(get_engine),
) -> maintenance_schema.UnblockResponse:
    return await engine.unblock(block_id, user)
