"""
Admin user management.

Users and agencies reference each other by plain ids. The rules that keep the pair
consistent live here rather than in foreign-key cascades:

- creating an agency-role user creates and links its Agency;
- deleting a user deletes its Agency;
- moving a user away from the agency role deletes its Agency.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from werkzeug.security import generate_password_hash

from app.portal.audit import record_event
from app.portal.errors import ConflictError, NotFoundError, ValidationError
from app.portal.models import ROLE_AGENCY, VALID_ROLES, VALID_STATUSES, User
from app.portal.modules.agencies.models import Agency
from app.portal.modules.agencies.service import create_agency, delete_agency, update_agency
from app.portal.utils import clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _normalize_role(raw: str | None) -> str | None:
    role = (raw or "").strip().lower()
    if not role:
        return None
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    return role


def _normalize_status(raw: str | None) -> str | None:
    status = (raw or "").strip().lower()
    if not status:
        return None
    if status not in VALID_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return status


def _ensure_unique(s: "Session", *, email: str, username: str, exclude_id: int | None = None) -> None:
    q = s.query(User).filter(User.email == email)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Email already exists", details="This email is already registered to another user")
    q = s.query(User).filter(User.username == username)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Username already exists")


def get_user(s: "Session", user_id: int) -> User:
    user = s.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def list_users(s: "Session") -> list[User]:
    return s.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def _agency_payload(payload: dict, user: User) -> dict:
    out = {
        "name": clean(payload.get("agencyName")) or user.name,
        "email": user.email,
        "contactPerson": clean(payload.get("contactPerson")) or user.username,
        "status": user.status,
    }
    for key in ("phone", "address", "commissionRate"):
        if payload.get(key) not in (None, ""):
            out[key] = payload[key]
    return out


def _agency_sync_payload(payload: dict, user: User) -> dict:
    """Fields pushed to an already linked agency; name and contact only change when sent."""
    out = {"email": user.email, "status": user.status}
    if clean(payload.get("agencyName")):
        out["name"] = clean(payload.get("agencyName"))
    for key in ("contactPerson", "phone", "address", "commissionRate"):
        if payload.get(key) not in (None, ""):
            out[key] = payload[key]
    return out


def create_user(s: "Session", payload: dict, actor: User) -> User:
    username = clean(payload.get("username"))
    email = (clean(payload.get("email")) or "").lower()
    password = payload.get("password") or ""
    if not username or not email:
        raise ValidationError("Username and email are required")
    if "@" not in email:
        raise ValidationError("A valid email is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    role = _normalize_role(payload.get("role")) or ROLE_AGENCY
    status = _normalize_status(payload.get("status")) or "active"
    _ensure_unique(s, email=email, username=username)

    now = datetime.utcnow()
    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        name=clean(payload.get("name")) or username,
        role=role,
        status=status,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()

    if role == ROLE_AGENCY:
        create_agency(s, _agency_payload(payload, user), actor, user=user)

    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": user.role, "agency_id": user.agency_id},
    )
    return user


def update_user(s: "Session", user: User, payload: dict, actor: User) -> User:
    username = clean(payload.get("username"))
    email = (clean(payload.get("email")) or "").lower()
    if not username or not email:
        raise ValidationError("Username and email are required")
    role = _normalize_role(payload.get("role")) or user.role
    status = _normalize_status(payload.get("status")) or user.status
    _ensure_unique(s, email=email, username=username, exclude_id=user.id)

    old_role = user.role
    user.username = username
    user.email = email
    user.name = clean(payload.get("name")) or username
    user.role = role
    user.status = status
    password = (payload.get("password") or "").strip()
    if password:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        user.password_hash = generate_password_hash(password)
    user.updated_at = datetime.utcnow()

    if role == ROLE_AGENCY:
        agency = s.get(Agency, user.agency_id) if user.agency_id else None
        if agency is not None:
            update_agency(s, agency, _agency_sync_payload(payload, user), actor)
            user.agency_name = agency.name
        elif clean(payload.get("agencyName")) or old_role != ROLE_AGENCY:
            create_agency(s, _agency_payload(payload, user), actor, user=user)
    elif user.agency_id:
        agency = s.get(Agency, user.agency_id)
        if agency is not None:
            logger.info("Role of user %s changed to %s; deleting agency %s", user.id, role, agency.id)
            delete_agency(s, agency, actor, cascade_user=False)
        user.agency_id = None
        user.agency_name = None

    record_event(
        s,
        actor=actor,
        action="user.update",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"role": {"old": old_role, "new": role}, "status": status, "password_changed": bool(password)},
    )
    return user


def delete_user(s: "Session", user: User, actor: User) -> None:
    if user.agency_id:
        agency = s.get(Agency, user.agency_id)
        if agency is not None:
            # The user row is deleted below; only the agency side is cascaded here.
            agency.user_id = None
            delete_agency(s, agency, actor, cascade_user=False)
    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "agency_id": user.agency_id},
    )
    s.delete(user)


def reset_password(s: "Session", user: User, new_password: str, actor: User) -> None:
    if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    user.password_hash = generate_password_hash(new_password)
    user.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="user.reset_password", entity_type="User", entity_id=str(user.id))
