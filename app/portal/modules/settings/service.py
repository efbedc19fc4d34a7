from __future__ import annotations

import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm.attributes import flag_modified

from app.portal.audit import record_event
from app.portal.errors import NotFoundError, ValidationError
from app.portal.modules.settings.models import PortalSettings, default_payment_settings
from app.portal.utils import clean, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.portal.models import User

SETTINGS_ID = 1
FALLBACK_ADMIN_EMAIL = "admin@education.com"

BANKING_FIELDS = (
    "bankName",
    "accountHolderName",
    "accountNumber",
    "ifscCode",
    "branchName",
    "routingNumber",
    "swiftCode",
    "address",
    "instructions",
)
SECRET_PAYMENT_FIELDS = ("secretKey", "webhookSecret")
ESCALATION_REQUIRED = ("name", "position", "email", "mobile")

# Settings keys accepted by PUT /api/admin/settings
_GENERAL_FIELDS = {
    "systemName": "system_name",
    "adminEmail": "admin_email",
    "emailNotifications": "email_notifications",
    "autoBackup": "auto_backup",
    "maintenanceMode": "maintenance_mode",
}


def get_settings(s: "Session", *, admin_email: str | None = None) -> PortalSettings:
    """Return the singleton, creating it on first read."""
    settings = s.get(PortalSettings, SETTINGS_ID)
    if settings is None:
        now = datetime.utcnow()
        settings = PortalSettings(
            id=SETTINGS_ID,
            admin_email=admin_email or FALLBACK_ADMIN_EMAIL,
            escalation_matrix=[],
            banking_details={},
            payment_settings=default_payment_settings(),
            created_at=now,
            updated_at=now,
        )
        s.add(settings)
        s.flush()
    return settings


def _touch(settings: PortalSettings, *attrs: str) -> None:
    for attr in attrs:
        flag_modified(settings, attr)
    settings.updated_at = datetime.utcnow()


def update_general(s: "Session", settings: PortalSettings, payload: dict, actor: "User") -> PortalSettings:
    changed = []
    for key, attr in _GENERAL_FIELDS.items():
        if key not in payload:
            continue
        value = payload[key]
        if attr in ("system_name", "admin_email"):
            value = clean(value)
            if not value:
                raise ValidationError(f"{key} cannot be empty")
        else:
            value = bool(value)
        setattr(settings, attr, value)
        changed.append(key)
    settings.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="settings.update", entity_type="Settings", metadata={"fields": changed})
    return settings


def update_banking_details(s: "Session", settings: PortalSettings, payload: dict, actor: "User") -> dict:
    details = {k: (clean(payload.get(k)) or "") for k in BANKING_FIELDS}
    settings.banking_details = details
    _touch(settings, "banking_details")
    record_event(s, actor=actor, action="settings.banking_details", entity_type="Settings")
    return details


def _by_level(entries: list[dict]) -> list[dict]:
    return sorted(entries, key=lambda e: (e.get("level") or 1))


def escalation_matrix(settings: PortalSettings) -> list[dict]:
    """Entries in level order; the stored list is kept in the same order."""
    return _by_level(settings.escalation_matrix or [])


def _escalation_entry(payload: dict, *, entry_id: str | None = None) -> dict:
    missing = [k for k in ESCALATION_REQUIRED if not clean(payload.get(k))]
    if missing:
        raise ValidationError("Missing required fields", details=missing)
    level = parse_int(payload.get("level"), 1) or 1
    if level < 1:
        raise ValidationError("Level must be 1 or greater")
    return {
        "id": entry_id or str(payload.get("id") or int(time.time() * 1000)),
        "name": clean(payload.get("name")),
        "position": clean(payload.get("position")),
        "email": clean(payload.get("email")),
        "mobile": clean(payload.get("mobile")),
        "level": level,
    }


def add_escalation_entry(s: "Session", settings: PortalSettings, payload: dict, actor: "User") -> dict:
    entry = _escalation_entry(payload, entry_id=str(int(time.time() * 1000)))
    settings.escalation_matrix = _by_level([*(settings.escalation_matrix or []), entry])
    _touch(settings, "escalation_matrix")
    record_event(s, actor=actor, action="settings.escalation_add", entity_type="Settings", metadata=entry)
    return entry


def replace_escalation_matrix(s: "Session", settings: PortalSettings, entries: Any, actor: "User") -> list[dict]:
    if not isinstance(entries, list):
        raise ValidationError("Invalid escalation matrix data")
    matrix = [_escalation_entry(e) for e in entries if isinstance(e, dict)]
    if len(matrix) != len(entries):
        raise ValidationError("Invalid escalation matrix data")
    matrix = _by_level(matrix)
    settings.escalation_matrix = matrix
    _touch(settings, "escalation_matrix")
    record_event(s, actor=actor, action="settings.escalation_replace", entity_type="Settings", metadata={"count": len(matrix)})
    return matrix


def remove_escalation_entry(s: "Session", settings: PortalSettings, index: Any, actor: "User") -> dict:
    """Remove by position in the level-ordered list that GET returns."""
    idx = parse_int(index)
    if idx is None:
        raise ValidationError("Index required")
    matrix = escalation_matrix(settings)
    if idx < 0 or idx >= len(matrix):
        raise NotFoundError("Escalation entry not found")
    removed = matrix.pop(idx)
    settings.escalation_matrix = matrix
    _touch(settings, "escalation_matrix")
    record_event(s, actor=actor, action="settings.escalation_remove", entity_type="Settings", metadata=removed)
    return removed


def payment_settings_view(settings: PortalSettings, *, include_secrets: bool) -> dict:
    data = {**default_payment_settings(), **(settings.payment_settings or {})}
    if not include_secrets:
        for key in SECRET_PAYMENT_FIELDS:
            data.pop(key, None)
    data["isActive"] = bool(data.get("enabled"))
    return data


def update_payment_settings(s: "Session", settings: PortalSettings, payload: dict, actor: "User") -> dict:
    current = {**default_payment_settings(), **(settings.payment_settings or {})}
    for key in ("universalPaymentLink", "paymentGateway", "currency", "publicKey", "secretKey", "webhookSecret"):
        if clean(payload.get(key)):
            current[key] = clean(payload.get(key))
    if "isActive" in payload or "enabled" in payload:
        current["enabled"] = bool(payload.get("isActive", payload.get("enabled")))
    if isinstance(payload.get("paymentMethods"), list):
        current["paymentMethods"] = [str(m) for m in payload["paymentMethods"]]
    for key in ("minimumAmount", "maximumAmount", "processingFee"):
        if payload.get(key) not in (None, ""):
            value = parse_float(payload.get(key))
            if value is None or value < 0:
                raise ValidationError(f"{key} must be a non-negative number")
            current[key] = value
    if current["minimumAmount"] > current["maximumAmount"]:
        raise ValidationError("minimumAmount cannot exceed maximumAmount")
    settings.payment_settings = current
    _touch(settings, "payment_settings")
    record_event(s, actor=actor, action="settings.payment_settings", entity_type="Settings")
    return current
