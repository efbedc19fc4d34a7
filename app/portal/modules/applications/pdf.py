from __future__ import annotations

from flask import Blueprint, Response, current_app, g, request

from app.portal.db import db_session
from app.portal.errors import ValidationError
from app.portal.modules.applications.service import get_application_for, mark_pdf_generated, related_documents
from app.portal.pdf import admission_form_pdf
from app.portal.rbac import require_any_user

bp = Blueprint("applications_pdf", __name__)


def _render(application_id) -> Response:
    if not application_id:
        raise ValidationError("Application ID is required")
    s = db_session()
    u = g.current_user
    application = get_application_for(s, application_id, u)
    docs = [d.to_dict() for d in related_documents(s, application)]
    pdf_bytes = admission_form_pdf(application.to_dict(), docs)
    mark_pdf_generated(s, application, u)
    s.commit()
    current_app.logger.info("Admission form generated for application %s (%s bytes)", application.id, len(pdf_bytes))
    return Response(
        pdf_bytes,
        mimetype="application/pdf",
        headers={"Content-Disposition": f'inline; filename="admission-form-{application.application_code}.pdf"'},
    )


@bp.post("/api/generate-pdf")
@require_any_user
def generate_pdf():
    payload = request.get_json(silent=True) or {}
    return _render(payload.get("applicationId"))


@bp.get("/api/generate-pdf")
@require_any_user
def generate_pdf_get():
    return _render(request.args.get("applicationId"))
