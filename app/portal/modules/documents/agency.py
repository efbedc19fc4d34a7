from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.portal.db import db_session
from app.portal.events import publish
from app.portal.modules.documents.service import (
    agency_update_document,
    delete_document,
    get_document,
    list_documents,
    upload_document,
)
from app.portal.rbac import agency_scope, require_agency

bp = Blueprint("documents_agency", __name__)


@bp.get("/api/agency/documents")
@require_agency
def documents_list():
    docs = list_documents(db_session(), agency_id=agency_scope())
    return jsonify({"documents": [d.to_dict(include_data=True) for d in docs]})


@bp.post("/api/agency/documents")
@require_agency
def documents_upload():
    s = db_session()
    doc = upload_document(s, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    publish("document", "uploaded", doc.to_dict())
    return jsonify({"success": True, "document": doc.to_dict()}), 201


@bp.put("/api/agency/documents/<int:document_id>")
@require_agency
def document_update(document_id: int):
    s = db_session()
    u = g.current_user
    doc = agency_update_document(s, get_document(s, document_id, agency_id=agency_scope()), request.get_json(silent=True) or {}, u)
    s.commit()
    return jsonify({"success": True, "document": doc.to_dict()})


@bp.delete("/api/agency/documents/<int:document_id>")
@require_agency
def document_delete(document_id: int):
    s = db_session()
    u = g.current_user
    delete_document(s, get_document(s, document_id, agency_id=agency_scope()), u)
    s.commit()
    return jsonify({"success": True, "message": "Document deleted successfully"})
