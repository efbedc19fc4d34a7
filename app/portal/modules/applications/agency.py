from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.portal.db import db_session
from app.portal.events import publish
from app.portal.modules.applications.service import (
    agency_dashboard_stats,
    agency_update_application,
    create_application,
    get_application_for,
    list_applications,
    pending_payment_applications,
    requested_documents,
)
from app.portal.rbac import agency_scope, require_agency

bp = Blueprint("applications_agency", __name__)


@bp.get("/api/agency/applications")
@require_agency
def applications_list():
    s = db_session()
    apps = list_applications(s, agency_id=agency_scope(), status=(request.args.get("status") or "").strip() or None)
    rows = []
    for a in apps:
        row = a.to_dict()
        row["submittedAt"] = row["createdAt"]
        rows.append(row)
    return jsonify({"applications": rows})


@bp.post("/api/agency/applications")
@require_agency
def applications_create():
    s = db_session()
    application = create_application(s, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    publish("application", "created", application.to_dict())
    return jsonify({"success": True, "id": application.id, "application": application.to_dict()}), 201


@bp.put("/api/agency/applications")
@require_agency
def applications_update():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    u = g.current_user
    application = agency_update_application(s, get_application_for(s, payload.get("id"), u), payload, u)
    s.commit()
    publish("application", "updated", {"id": application.id})
    return jsonify({"success": True, "application": application.to_dict()})


@bp.get("/api/agency/applications/pending-payments")
@require_agency
def applications_pending_payments():
    return jsonify({"applications": pending_payment_applications(db_session(), agency_scope())})


@bp.get("/api/agency/requested-documents")
@require_agency
def applications_requested_documents():
    return jsonify({"applications": requested_documents(db_session(), agency_scope())})


@bp.get("/api/agency/stats")
@require_agency
def dashboard_stats():
    return jsonify(agency_dashboard_stats(db_session(), agency_scope()))
