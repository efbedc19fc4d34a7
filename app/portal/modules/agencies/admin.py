from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.portal.db import db_session
from app.portal.events import publish
from app.portal.modules.agencies.service import (
    create_agency,
    delete_agency,
    get_agency,
    list_agencies_with_stats,
    update_agency,
)
from app.portal.rbac import require_admin

bp = Blueprint("agencies_admin", __name__)


@bp.get("/api/admin/agencies")
@require_admin
def agencies_list():
    s = db_session()
    return jsonify({"agencies": list_agencies_with_stats(s)})


@bp.post("/api/admin/agencies")
@require_admin
def agencies_create():
    s = db_session()
    agency = create_agency(s, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    publish("agency", "created", agency.to_dict())
    return jsonify({"agency": agency.to_dict()}), 201


@bp.get("/api/admin/agencies/<int:agency_id>")
@require_admin
def agency_detail(agency_id: int):
    s = db_session()
    return jsonify({"agency": get_agency(s, agency_id).to_dict()})


@bp.put("/api/admin/agencies/<int:agency_id>")
@require_admin
def agency_update(agency_id: int):
    s = db_session()
    agency = update_agency(s, get_agency(s, agency_id), request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    publish("agency", "updated", agency.to_dict())
    return jsonify({"agency": agency.to_dict()})


@bp.delete("/api/admin/agencies/<int:agency_id>")
@require_admin
def agency_delete(agency_id: int):
    s = db_session()
    delete_agency(s, get_agency(s, agency_id), g.current_user)
    s.commit()
    publish("agency", "deleted", {"id": agency_id})
    return jsonify({"message": "Agency and associated user deleted successfully"})
