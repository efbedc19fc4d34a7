from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.portal.db import db_session
from app.portal.events import publish
from app.portal.modules.applications.service import (
    admin_dashboard_stats,
    admin_update_application,
    application_chart_data,
    application_stats,
    application_with_documents,
    delete_application,
    get_application,
    list_applications,
    set_application_status,
)
from app.portal.rbac import require_admin
from app.portal.utils import parse_int

bp = Blueprint("applications_admin", __name__)


@bp.get("/api/admin/applications")
@require_admin
def applications_list():
    s = db_session()
    apps = list_applications(
        s,
        status=(request.args.get("status") or "").strip() or None,
        agency=(request.args.get("agency") or "").strip() or None,
        search=(request.args.get("search") or "").strip() or None,
    )
    return jsonify({"applications": [application_with_documents(s, a) for a in apps]})


@bp.patch("/api/admin/applications")
@require_admin
def applications_set_status():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    application = get_application(s, payload.get("applicationId"))
    updated = set_application_status(s, application, payload.get("status") or "", g.current_user)
    s.commit()
    publish("application", "status_changed", {"id": application.id, "status": application.status})
    return jsonify(
        {
            "message": "Application status updated successfully",
            "application": application.to_dict(),
            "documentsUpdated": updated,
        }
    )


@bp.get("/api/admin/applications/stats")
@require_admin
def applications_stats():
    return jsonify(application_stats(db_session()))


@bp.get("/api/admin/applications/chart-data")
@require_admin
def applications_chart_data():
    return jsonify(application_chart_data(db_session(), year=parse_int(request.args.get("year"))))


@bp.get("/api/admin/applications/<int:application_id>")
@require_admin
def application_detail(application_id: int):
    s = db_session()
    return jsonify({"application": application_with_documents(s, get_application(s, application_id))})


@bp.put("/api/admin/applications/<int:application_id>")
@require_admin
def application_update(application_id: int):
    s = db_session()
    application = admin_update_application(
        s, get_application(s, application_id), request.get_json(silent=True) or {}, g.current_user
    )
    s.commit()
    publish("application", "updated", {"id": application.id, "status": application.status})
    return jsonify({"application": application.to_dict(), "message": "Application updated successfully"})


@bp.delete("/api/admin/applications/<int:application_id>")
@require_admin
def application_delete(application_id: int):
    s = db_session()
    delete_application(s, get_application(s, application_id), g.current_user)
    s.commit()
    publish("application", "deleted", {"id": application_id})
    return jsonify({"message": "Application deleted successfully"})


@bp.get("/api/admin/stats")
@require_admin
def dashboard_stats():
    return jsonify(admin_dashboard_stats(db_session()))
