"""
Error taxonomy for the portal.

Service functions raise these; the handlers registered by ``register_error_handlers``
turn them into ``{"error": message}`` JSON bodies with the matching HTTP status.
"""
from __future__ import annotations

from typing import Any

from flask import Flask, g, jsonify, render_template, request
from werkzeug.exceptions import HTTPException


class PortalError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error", *, details: Any | None = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(PortalError):
    status_code = 400

    def __init__(self, message: str = "Validation error", *, details: Any | None = None):
        super().__init__(message, details=details)


class ConflictError(ValidationError):
    """Duplicate records (unique email, payment already exists, ...). Reported as 400."""


class AuthenticationError(PortalError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized", *, details: Any | None = None):
        super().__init__(message, details=details)


class AccountInactiveError(PortalError):
    """Raised at login for deactivated users or users of a deactivated agency."""

    status_code = 403

    def __init__(self, message: str, *, reason: str = "user_deactivated"):
        self.reason = reason
        super().__init__(message)


class ForbiddenError(PortalError):
    status_code = 403

    def __init__(self, message: str = "Forbidden", *, details: Any | None = None):
        super().__init__(message, details=details)


class NotFoundError(PortalError):
    status_code = 404

    def __init__(self, message: str = "Not found", *, details: Any | None = None):
        super().__init__(message, details=details)


def _is_api_request() -> bool:
    return request.path.startswith("/api/")


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(PortalError)
    def _portal_error(e: PortalError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("PortalError %s (request_id=%s)", e.message, getattr(g, "request_id", None))
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        code = e.code or 500
        if _is_api_request():
            return jsonify({"error": e.description or e.name}), code
        if code in (403, 404):
            return render_template(f"errors/{code}.html"), code
        return e

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        if _is_api_request():
            return jsonify({"error": "Internal server error"}), 500
        return render_template("errors/500.html"), 500
