from __future__ import annotations

import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.portal.models import AuditEvent, User


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper.
    """
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        actor_agency_id=actor.agency_id if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=request.remote_addr if in_request else None,
    )
    s.add(ev)
    return ev


def recent_events(s: Session, *, agency_id: int | None = None, limit: int = 20) -> list[dict[str, Any]]:
    """Activity feed rows, newest first. ``agency_id`` narrows to one tenant's actors."""
    q = s.query(AuditEvent)
    if agency_id is not None:
        q = q.filter(AuditEvent.actor_agency_id == agency_id)
    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit).all()
    out = []
    for ev in events:
        out.append(
            {
                "id": str(ev.id),
                "type": (ev.entity_type or "system").lower(),
                "action": ev.action,
                "message": _describe(ev),
                "user": ev.actor_user_email or "System",
                "timestamp": ev.created_at.isoformat(),
                "entityId": ev.entity_id,
            }
        )
    return out


def _describe(ev: AuditEvent) -> str:
    verb = ev.action.split(".", 1)[-1].replace("_", " ")
    noun = ev.entity_type or "record"
    return f"{noun} {verb}".strip()
