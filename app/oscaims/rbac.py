from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g

from app.oscaims.models import User


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        abort(401)
    return u


def user_has_role(user: User | None, *roles: str) -> bool:
    if not user:
        return False
    return user.role in roles


def _active_user_or_401() -> User:
    user: User | None = getattr(g, "current_user", None)
    if not user:
        abort(401)
    # set inactive by logout, the session sweep or an admin; logging in again reactivates
    if not user.is_active:
        abort(401, description="Account is inactive. Please log in again.")
    return user


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        _active_user_or_401()
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            # Unauthenticated or inactive -> 401, authenticated but wrong role -> 403
            user = _active_user_or_401()
            if not user_has_role(user, *roles):
                g.missing_role = ",".join(roles)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
