from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for

from app.vims.constants import UserRole
from app.vims.errors import UnauthorizedAccessError
from app.vims.models import User


def user_has_role(user: User | None, role: UserRole | str) -> bool:
    if not user or not user.can_login():
        return False
    return user.role == UserRole(role)


def require_role(role: UserRole | str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            is_api = request.path.startswith("/api/")
            # Unauthenticated page request → redirect to login.
            if not user and not is_api:
                nxt = request.full_path or request.path
                # Avoid trailing '?' from full_path when there is no query string.
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            if not user_has_role(user, role):
                g.missing_role = str(UserRole(role).value)
                if is_api:
                    raise UnauthorizedAccessError(f"Access denied: role {g.missing_role} required")
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
