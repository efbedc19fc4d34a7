from __future__ import annotations

import io
from datetime import date

from flask import Blueprint, Response, current_app, g, jsonify, render_template, request, send_file

from app.portal.audit import record_event
from app.portal.db import db_session
from app.portal.modules.reports.service import entity_report, export_data, template_report
from app.portal.rbac import require_admin

bp = Blueprint("reports_admin", __name__)


@bp.post("/api/admin/export")
@require_admin
def export_post():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    content, mimetype, filename = export_data(s, payload)
    record_event(
        s,
        actor=g.current_user,
        action="report.export",
        entity_type="Report",
        entity_id=payload.get("dataType"),
        metadata={"format": payload.get("format"), "bytes": len(content)},
    )
    s.commit()
    current_app.logger.info("Export %s generated (%s bytes)", filename, len(content))
    return send_file(io.BytesIO(content), mimetype=mimetype, as_attachment=True, download_name=filename, max_age=0)


@bp.get("/api/admin/reports/<entity>")
@require_admin
def entity_report_get(entity: str):
    s = db_session()
    report = entity_report(s, entity)
    html = render_template("reports/report.html", **report)
    filename = f"{entity}-report-{date.today().strftime('%Y%m%d')}.html"
    return Response(
        html,
        mimetype="text/html",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@bp.post("/api/admin/reports/<template_id>")
@require_admin
def template_report_post(template_id: str):
    s = db_session()
    return jsonify(template_report(s, template_id))
