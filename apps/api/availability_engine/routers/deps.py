"""Shared router dependencies."""
from __future__ import annotations

from fastapi import Request

from ..services.engine import AvailabilityEngine


def get_engine(request: Request) -> AvailabilityEngine:
    """Return the engine built at application startup."""

    return request.app.state.engine
