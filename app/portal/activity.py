from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.portal.audit import recent_events
from app.portal.db import db_session
from app.portal.rbac import agency_scope, require_admin, require_agency
from app.portal.utils import parse_int

bp = Blueprint("activity", __name__)

MAX_ACTIVITY_LIMIT = 200


def _limit() -> int:
    limit = parse_int(request.args.get("limit"), 20) or 20
    return max(1, min(limit, MAX_ACTIVITY_LIMIT))


@bp.get("/api/admin/activities")
@require_admin
def admin_activities():
    return jsonify({"activities": recent_events(db_session(), limit=_limit())})


@bp.get("/api/agency/activities")
@require_agency
def agency_activities():
    return jsonify({"activities": recent_events(db_session(), agency_id=agency_scope(), limit=_limit())})
