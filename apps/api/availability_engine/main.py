"""FastAPI application for the hotel availability engine."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .core.config import settings
from .core.errors import EngineError
from .db.session import SessionLocal, engine as db_engine
from .routers import availability, bookings, holds, maintenance, occupancy
from .services.engine import AvailabilityEngine
from .services.sweeper import expiry_loop

logger = logging.getLogger(__name__)


def create_app(engine: AvailabilityEngine | None = None) -> FastAPI:
    """Build the API; tests pass their own engine."""

    app = FastAPI(title="Hotel Availability Engine", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.expiry_stop = None
    app.state.expiry_task = None

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(EngineError)
    async def handle_engine_error(request: Request, exc: EngineError) -> JSONResponse:
        """Render typed engine failures with an actionable message."""

        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    for module, tag in (
        (availability, "availability"),
        (occupancy, "availability"),
        (holds, "holds"),
        (bookings, "bookings"),
        (maintenance, "maintenance"),
    ):
        app.include_router(module.router, prefix="/api", tags=[tag])

    @app.get("/api/health", tags=["meta"])
    async def health() -> dict[str, str]:
        """Simple liveness check."""

        return {"status": "ok"}

    @app.head("/api/health", tags=["meta"])
    async def health_head() -> Response:
        """Allow HEAD for uptime monitors that only need the status code."""

        return Response(status_code=200)

    return app


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the hold expiry sweep for as long as the app serves requests."""

    logging.basicConfig(level=settings.log_level.upper())
    if app.state.engine is None:
        app.state.engine = AvailabilityEngine(SessionLocal, settings=settings)
    stop = asyncio.Event()
    app.state.expiry_stop = stop
    app.state.expiry_task = asyncio.create_task(
        expiry_loop(app.state.engine.sweep_expired, stop, interval=settings.expiry_sweep_interval_seconds)
    )
    logger.info("Availability engine started (%s)", settings.app_env)
    try:
        yield
    finally:
        stop.set()
        await app.state.expiry_task
        await app.state.engine.close()
        await db_engine.dispose()


app = create_app()
