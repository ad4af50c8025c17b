"""Caller identity as supplied by the upstream identity provider."""
from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header

from . import errors

ADMIN_ROLE = "admin"


@dataclass(frozen=True, slots=True)
class CurrentUser:
    user_id: str
    is_admin: bool = False


async def get_current_user(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> CurrentUser | None:
    """FastAPI dependency resolving the caller from gateway headers."""

    if not x_user_id or not x_user_id.strip():
        return None
    role = (x_user_role or "").strip().lower()
    return CurrentUser(user_id=x_user_id.strip(), is_admin=role == ADMIN_ROLE)


def require_user(user: CurrentUser | None, *, action: str) -> CurrentUser:
    """Return the user or raise ``UnauthorizedError`` naming the attempted action."""

    if user is None:
        raise errors.UnauthorizedError(f"Please sign in to {action}.")
    return user


def require_admin(user: CurrentUser | None, *, action: str) -> CurrentUser:
    resolved = require_user(user, action=action)
    if not resolved.is_admin:
        raise errors.ForbiddenError(f"Admin access is required to {action}.")
    return resolved
