"""Database engine and session factory."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..core.config import settings


def build_engine(url: str, *, ssl_required: bool = False, **kwargs: object) -> AsyncEngine:
    """Create an async engine for the calendar backend."""

    connect_args: dict[str, object] = dict(kwargs.pop("connect_args", None) or {})
    if ssl_required:
        connect_args["ssl"] = True
    return create_async_engine(url, echo=False, pool_pre_ping=True, connect_args=connect_args, **kwargs)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


engine = build_engine(settings.database_async_url, ssl_required=settings.database_ssl_required)
SessionLocal = build_sessionmaker(engine)
