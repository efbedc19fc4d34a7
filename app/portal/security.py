import secrets

from flask import Request, session


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def csrf_exempt(req: Request) -> bool:
    """
    JSON bodies and PUT/PATCH/DELETE cannot be sent cross-site without a CORS
    preflight, so those API calls ride on the SameSite session cookie alone.
    """
    if not req.path.startswith("/api/"):
        return False
    return req.is_json or req.method in ("PUT", "PATCH", "DELETE")


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from header or form field."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    return bool(token and secrets.compare_digest(str(token), str(session.get("csrf_token") or "")))
