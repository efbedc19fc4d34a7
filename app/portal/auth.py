from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, session, url_for
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash

from app.portal.audit import record_event
from app.portal.db import db_session
from app.portal.errors import AccountInactiveError, AuthenticationError, ValidationError
from app.portal.models import ROLE_AGENCY, User
from app.portal.modules.agencies.models import Agency

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

INACTIVE_USER_MESSAGE = "Your account has been deactivated. Please contact the administrator."
INACTIVE_AGENCY_MESSAGE = "Your agency account is inactive. Please contact the administrator."


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    recent = [t for t in _login_attempts.get(ip, ()) if t > cutoff]
    if not recent:
        _login_attempts.pop(ip, None)
        return False
    _login_attempts[ip] = recent
    return len(recent) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def account_status(s: Session, user: User) -> tuple[bool, str | None, str | None]:
    """(active, reason, message) for a user and, for agency users, their agency."""
    if not user.is_active:
        return False, "user_deactivated", INACTIVE_USER_MESSAGE
    if user.role == ROLE_AGENCY and user.agency_id:
        agency = s.get(Agency, user.agency_id)
        if agency is not None and agency.status != "active":
            return False, "agency_deactivated", INACTIVE_AGENCY_MESSAGE
    return True, None, None


def authenticate(s: Session, email: str, password: str) -> User | None:
    """
    Returns the user for valid credentials, None otherwise.
    Raises AccountInactiveError when the user or its agency is deactivated.
    """
    email = (email or "").strip().lower()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user:
        return None
    active, reason, message = account_status(s, user)
    if not active:
        raise AccountInactiveError(message or INACTIVE_USER_MESSAGE, reason=reason or "user_deactivated")
    if not check_password_hash(user.password_hash, password or ""):
        return None
    try:
        user.last_login = datetime.utcnow()
        s.flush()
    except Exception as e:
        # last_login is informational only
        current_app.logger.warning("Could not update last_login for user %s: %s", user.id, e)
    return user


def _start_session(user: User) -> None:
    session.clear()
    session.permanent = True
    session["user"] = user.session_payload()


def _end_session() -> None:
    session.pop("user", None)


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    payload = session.get("user") or {}
    user_id = payload.get("id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user:
            _end_session()
            g.current_user = None
            return
        active, reason, _ = account_status(s, user)
        if not active:
            current_app.logger.info("Logging out inactive account user_id=%s reason=%s", user.id, reason)
            _end_session()
            g.current_user = None
            g.inactive_reason = reason
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        _end_session()
        g.current_user = None


def _login(email: str, password: str) -> User:
    ip = request.remote_addr or "unknown"
    if _check_rate_limit(ip):
        raise AuthenticationError("Too many login attempts. Please wait 5 minutes.")
    _record_attempt(ip)

    s = db_session()
    try:
        user = authenticate(s, email, password)
    except AccountInactiveError as e:
        record_event(s, actor=None, action="auth.login_blocked", entity_type="User", entity_id=email, reason=e.reason)
        s.commit()
        raise
    if not user:
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        raise AuthenticationError("Invalid credentials")

    _start_session(user)
    _login_attempts.pop(ip, None)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return user


@bp.get("/login")
def login_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("pages.index"))
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    if not email or not password:
        flash("Email and password are required.", "danger")
        return redirect(url_for("auth.login_get"))
    try:
        _login(email, password)
    except (AuthenticationError, AccountInactiveError) as e:
        flash(e.message, "danger")
        return redirect(url_for("auth.login_get"))
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise
    # Optional "next" redirect (only allow local paths to avoid open redirects).
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("pages.index"))


@bp.post("/api/auth/login")
def api_login():
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password are required")
    user = _login(email, password)
    return jsonify({"success": True, "user": user.session_payload()})


@bp.route("/logout", methods=["GET", "POST"])
@bp.post("/api/auth/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    _end_session()
    if request.path.startswith("/api/"):
        return jsonify({"success": True})
    return redirect(url_for("auth.login_get"))


@bp.get("/api/auth/session")
def api_session():
    user = getattr(g, "current_user", None)
    if not user:
        return jsonify(None), 401
    return jsonify(user.session_payload())


@bp.post("/api/auth/check-status")
def api_check_status():
    user = getattr(g, "current_user", None)
    if not user:
        reason = getattr(g, "inactive_reason", None)
        if reason:
            message = INACTIVE_AGENCY_MESSAGE if reason == "agency_deactivated" else INACTIVE_USER_MESSAGE
            return jsonify({"active": False, "reason": reason, "message": message})
        return jsonify({"active": False, "reason": "no_session", "message": "Not logged in"}), 401
    active, reason, message = account_status(db_session(), user)
    return jsonify({"active": active, "reason": reason, "message": message})
