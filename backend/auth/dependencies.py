from __future__ import annotations

from fastapi import Depends, Request

from ..errors import Forbidden, Unauthorized


def session_user(request: Request) -> dict | None:
    """The user dict stored at login, or ``None`` for anonymous requests."""
    user = request.session.get("user")
    return user if user and user.get("id") else None


def require_user(request: Request) -> dict:
    user = session_user(request)
    if user is None:
        raise Unauthorized()
    return user


def require_admin(user: dict = Depends(require_user)) -> dict:
    """401 when anonymous, 403 for a logged-in non-admin."""
    if user.get("role") != "admin":
        raise Forbidden("Admin access required")
    return user
