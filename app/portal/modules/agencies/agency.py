from __future__ import annotations

from flask import Blueprint, g, jsonify, request, session

from app.portal.db import db_session
from app.portal.modules.agencies.service import agency_profile, update_agency_profile
from app.portal.rbac import require_agency

bp = Blueprint("agencies_agency", __name__)


@bp.get("/api/agency/settings")
@require_agency
def settings_get():
    return jsonify(agency_profile(db_session(), g.current_user))


@bp.put("/api/agency/settings")
@require_agency
def settings_put():
    s = db_session()
    u = g.current_user
    result = update_agency_profile(s, u, request.get_json(silent=True) or {})
    s.commit()
    if result["forceLogout"]:
        session.pop("user", None)
    else:
        session["user"] = u.session_payload()
    return jsonify({"success": True, **result, **agency_profile(s, u)})
