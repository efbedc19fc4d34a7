from __future__ import annotations

import io
import mimetypes

from flask import Blueprint, g, jsonify, request, send_file

from app.portal.db import db_session
from app.portal.modules.documents.service import document_bytes, get_document, list_documents, set_document_status
from app.portal.rbac import require_admin

bp = Blueprint("documents_admin", __name__)


@bp.get("/api/admin/documents")
@require_admin
def documents_list():
    return jsonify({"documents": [d.to_dict() for d in list_documents(db_session())]})


@bp.put("/api/admin/documents")
@require_admin
def documents_set_status():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    doc = set_document_status(s, get_document(s, payload.get("documentId")), payload.get("status") or "", g.current_user)
    s.commit()
    return jsonify({"success": True, "document": doc.to_dict()})


@bp.get("/api/admin/documents/<int:document_id>")
@require_admin
def document_detail(document_id: int):
    doc = get_document(db_session(), document_id)
    return jsonify({"document": doc.to_dict(include_data=True)})


@bp.get("/api/admin/documents/<int:document_id>/download")
@require_admin
def document_download(document_id: int):
    doc = get_document(db_session(), document_id)
    content = document_bytes(doc)
    mimetype = mimetypes.guess_type(doc.name)[0] or "application/octet-stream"
    return send_file(io.BytesIO(content), mimetype=mimetype, as_attachment=True, download_name=doc.name)
