from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, jsonify, redirect, request, url_for

from app.portal.errors import ForbiddenError
from app.portal.models import ROLE_ADMIN, ROLE_AGENCY, User


def user_has_role(user: User | None, *roles: str) -> bool:
    if not user or not user.is_active:
        return False
    return user.role in roles


def dashboard_endpoint(user: User) -> str:
    return "pages.admin_index" if user.role == ROLE_ADMIN else "pages.agency_index"


def _unauthorized_response():
    return jsonify({"error": "Unauthorized"}), 401


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Gate a view on the session user's role.

    API routes (``/api/...``) answer 401 JSON for a missing session or a wrong role.
    Page routes redirect: anonymous users to the login page, users of the other role
    to their own dashboard.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            is_api = request.path.startswith("/api/")
            if not user or not user.is_active:
                if is_api:
                    return _unauthorized_response()
                nxt = request.full_path or request.path
                # Avoid trailing '?' from full_path when there is no query string.
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            if not user_has_role(user, *roles):
                if is_api:
                    return _unauthorized_response()
                return redirect(url_for(dashboard_endpoint(user)))
            return fn(*args, **kwargs)

        return wrapped

    return decorator


require_admin = require_role(ROLE_ADMIN)
require_agency = require_role(ROLE_AGENCY)
require_any_user = require_role(ROLE_ADMIN, ROLE_AGENCY)


def agency_scope() -> int:
    """Agency id the current agency user's queries are scoped to."""
    user: User | None = getattr(g, "current_user", None)
    if user is None or user.agency_id is None:
        raise ForbiddenError("No agency linked to this account")
    return user.agency_id
