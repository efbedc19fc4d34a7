from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from werkzeug.security import check_password_hash, generate_password_hash

from app.portal.audit import record_event
from app.portal.errors import ConflictError, NotFoundError, ValidationError
from app.portal.modules.agencies.models import Agency
from app.portal.utils import clean, parse_float

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.portal.models import User

logger = logging.getLogger(__name__)

DEFAULT_AGENCY_COMMISSION = 15.0


def _validate_commission(raw: Any, default: float | None) -> float | None:
    rate = parse_float(raw, default)
    if rate is None:
        return None
    if rate < 0 or rate > 100:
        raise ValidationError("Commission rate must be between 0 and 100")
    return rate


def validate_agency_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "name" in payload:
        if not clean(payload.get("name")):
            errors.append("Agency name is required.")
    if not partial or "email" in payload:
        email = clean(payload.get("email"))
        if not email or "@" not in email:
            errors.append("A valid email is required.")
    status = clean(payload.get("status"))
    if status and status not in ("active", "inactive"):
        errors.append("Status must be active or inactive.")
    return errors


def _ensure_email_free(s: "Session", email: str, *, exclude_id: int | None = None) -> None:
    q = s.query(Agency).filter(func.lower(Agency.email) == email.lower())
    if exclude_id is not None:
        q = q.filter(Agency.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Agency email already exists")


def get_agency(s: "Session", agency_id: int) -> Agency:
    agency = s.get(Agency, agency_id)
    if not agency:
        raise NotFoundError("Agency not found")
    return agency


def create_agency(s: "Session", payload: dict, actor: "User | None", *, user: "User | None" = None) -> Agency:
    """Create an agency; when ``user`` is given, link both sides."""
    errors = validate_agency_payload(payload)
    if errors:
        raise ValidationError(errors[0], details=errors)
    email = clean(payload.get("email")).lower()  # type: ignore[union-attr]
    _ensure_email_free(s, email)

    now = datetime.utcnow()
    agency = Agency(
        name=clean(payload.get("name")),
        email=email,
        phone=clean(payload.get("phone")),
        address=clean(payload.get("address")),
        contact_person=clean(payload.get("contactPerson")),
        commission_rate=_validate_commission(payload.get("commissionRate"), DEFAULT_AGENCY_COMMISSION),
        status=clean(payload.get("status")) or "active",
        created_at=now,
        updated_at=now,
    )
    if user is not None:
        agency.user_id = user.id
        agency.username = user.username
    s.add(agency)
    s.flush()
    if user is not None:
        user.agency_id = agency.id
        user.agency_name = agency.name

    record_event(
        s,
        actor=actor,
        action="agency.create",
        entity_type="Agency",
        entity_id=str(agency.id),
        metadata={"name": agency.name, "email": agency.email},
    )
    return agency


def update_agency(s: "Session", agency: Agency, payload: dict, actor: "User | None") -> Agency:
    errors = validate_agency_payload(payload, partial=True)
    if errors:
        raise ValidationError(errors[0], details=errors)

    changes: dict[str, dict] = {}

    def _set(attr: str, new: Any) -> None:
        old = getattr(agency, attr)
        if new != old:
            changes[attr] = {"old": old, "new": new}
            setattr(agency, attr, new)

    if "name" in payload:
        _set("name", clean(payload.get("name")))
    if "email" in payload:
        email = clean(payload.get("email")).lower()  # type: ignore[union-attr]
        if email != agency.email:
            _ensure_email_free(s, email, exclude_id=agency.id)
        _set("email", email)
    for key, attr in (("phone", "phone"), ("address", "address"), ("contactPerson", "contact_person")):
        if key in payload:
            _set(attr, clean(payload.get(key)))
    if "commissionRate" in payload:
        _set("commission_rate", _validate_commission(payload.get("commissionRate"), agency.commission_rate))
    if clean(payload.get("status")):
        _set("status", clean(payload.get("status")))

    if changes:
        agency.updated_at = datetime.utcnow()
        # Keep the linked login's denormalized agency name in step.
        if "name" in changes and agency.user_id:
            from app.portal.models import User

            linked = s.get(User, agency.user_id)
            if linked is not None:
                linked.agency_name = agency.name
        record_event(
            s,
            actor=actor,
            action="agency.update",
            entity_type="Agency",
            entity_id=str(agency.id),
            metadata={"changes": changes},
        )
    return agency


def delete_agency(s: "Session", agency: Agency, actor: "User | None", *, cascade_user: bool = True) -> None:
    """Delete an agency. Its linked login goes with it unless ``cascade_user`` is False."""
    from app.portal.models import User

    agency_id = agency.id
    linked_user_id = agency.user_id
    if linked_user_id:
        linked = s.get(User, linked_user_id)
        if linked is not None:
            if cascade_user:
                s.delete(linked)
                logger.info("Deleted user %s together with agency %s", linked_user_id, agency_id)
            else:
                linked.agency_id = None
                linked.agency_name = None
    s.delete(agency)
    record_event(
        s,
        actor=actor,
        action="agency.delete",
        entity_type="Agency",
        entity_id=str(agency_id),
        metadata={"name": agency.name, "user_id": linked_user_id, "cascade_user": cascade_user},
    )


def list_agencies_with_stats(s: "Session") -> list[dict]:
    from app.portal.modules.applications.models import Application
    from app.portal.modules.payments.models import Payment

    app_counts = dict(
        s.query(Application.agency_id, func.count(Application.id)).group_by(Application.agency_id).all()
    )
    revenue = dict(
        s.query(Payment.agency_id, func.coalesce(func.sum(Payment.payment_amount), 0))
        .filter(Payment.payment_status.in_(("paid", "verified", "approved")))
        .group_by(Payment.agency_id)
        .all()
    )
    out = []
    for agency in s.query(Agency).order_by(Agency.created_at.desc(), Agency.id.desc()).all():
        row = agency.to_dict()
        row["totalApplications"] = int(app_counts.get(agency.id, 0))
        row["totalRevenue"] = float(revenue.get(agency.id, 0) or 0)
        out.append(row)
    return out


def agency_profile(s: "Session", user: "User") -> dict:
    agency = s.get(Agency, user.agency_id) if user.agency_id else None
    return {"user": user.to_dict(), "agency": agency.to_dict() if agency else None}


def update_agency_profile(s: "Session", user: "User", payload: dict) -> dict:
    """
    Agency self-service settings. Returns ``{"forceLogout": bool}``;
    a password change ends the session.
    """
    from app.portal.models import User

    name = clean(payload.get("name"))
    email = clean(payload.get("email"))
    if not name:
        raise ValidationError("Name is required")
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    email = email.lower()

    if email != user.email:
        taken = s.query(User).filter(User.email == email, User.id != user.id).first()
        if taken is not None:
            raise ConflictError("Email already in use")

    force_logout = False
    new_password = payload.get("newPassword") or ""
    if new_password:
        if not check_password_hash(user.password_hash, payload.get("currentPassword") or ""):
            raise ValidationError("Current password is incorrect")
        if len(new_password) < 6:
            raise ValidationError("Password must be at least 6 characters")
        user.password_hash = generate_password_hash(new_password)
        force_logout = True

    user.name = name
    user.email = email
    user.updated_at = datetime.utcnow()

    if user.agency_id:
        agency = s.get(Agency, user.agency_id)
        if agency is not None:
            agency_payload = {k: payload[k] for k in ("phone", "address", "contactPerson") if k in payload}
            agency_payload["name"] = clean(payload.get("agencyName")) or agency.name
            agency_payload["email"] = email
            update_agency(s, agency, agency_payload, user)
            user.agency_name = agency.name

    record_event(
        s,
        actor=user,
        action="agency.settings_update",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"password_changed": force_logout},
    )
    return {"forceLogout": force_logout}
