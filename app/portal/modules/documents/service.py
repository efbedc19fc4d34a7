from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from werkzeug.utils import secure_filename

from app.portal.audit import record_event
from app.portal.errors import ForbiddenError, NotFoundError, ValidationError
from app.portal.modules.documents.models import VALID_DOCUMENT_STATUSES, Document
from app.portal.utils import clean, decode_base64, parse_int, strip_data_url

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.portal.models import User

logger = logging.getLogger(__name__)


def get_document(s: "Session", document_id: Any, *, agency_id: int | None = None) -> Document:
    doc_id = parse_int(document_id)
    doc = s.get(Document, doc_id) if doc_id is not None else None
    if doc is None or (agency_id is not None and doc.agency_id != agency_id):
        raise NotFoundError("Document not found")
    return doc


def upload_document(s: "Session", payload: dict, actor: "User") -> Document:
    """
    Store a base64 document inline, then flag it on the application's payment.

    The flag update is best-effort; its failures are logged and never fail the upload.
    """
    from app.portal.modules.payments.service import mark_document_uploaded

    if actor.agency_id is None:
        raise ForbiddenError("No agency linked to this account")
    application_ref = clean(payload.get("applicationId"))
    raw = payload.get("fileData")
    if not application_ref:
        raise ValidationError("applicationId is required")
    if not raw or not isinstance(raw, str):
        raise ValidationError("fileData is required")
    try:
        content = decode_base64(raw)
    except ValueError:
        raise ValidationError("fileData is not valid base64")

    name = clean(payload.get("name")) or "unknown"
    doc_type = clean(payload.get("type")) or "unknown"
    size = parse_int(payload.get("size")) or len(content)
    now = datetime.utcnow()
    doc = Document(
        name=name,
        type=doc_type,
        size=size,
        application_ref=application_ref,
        agency_id=actor.agency_id,
        status="pending",
        file_path=f"/uploads/{secure_filename(name) or 'unknown'}",
        file_data=strip_data_url(raw),
        uploaded_at=now,
        created_at=now,
        updated_at=now,
    )
    s.add(doc)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="document.upload",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"name": name, "type": doc_type, "size": size, "application": application_ref},
    )

    try:
        with s.begin_nested():
            tracked = mark_document_uploaded(s, application_ref, doc_type, name, agency_id=actor.agency_id)
            s.flush()
        if tracked:
            logger.info("Document %s marked %s uploaded for application %s", doc.id, tracked, application_ref)
    except Exception as e:
        logger.error("Document flag update failed for application %s: %s", application_ref, e)
    return doc


def list_documents(s: "Session", *, agency_id: int | None = None) -> list[Document]:
    q = s.query(Document)
    if agency_id is not None:
        q = q.filter(Document.agency_id == agency_id)
    return q.order_by(Document.created_at.desc(), Document.id.desc()).all()


def agency_update_document(s: "Session", doc: Document, payload: dict, actor: "User") -> Document:
    if "type" in payload:
        new_type = clean(payload.get("type"))
        if not new_type:
            raise ValidationError("type cannot be empty")
        doc.type = new_type
    if "applicationId" in payload:
        ref = clean(payload.get("applicationId"))
        if not ref:
            raise ValidationError("applicationId cannot be empty")
        doc.application_ref = ref
    doc.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="document.update", entity_type="Document", entity_id=str(doc.id))
    return doc


def delete_document(s: "Session", doc: Document, actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        action="document.delete",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"name": doc.name, "application": doc.application_ref},
    )
    s.delete(doc)


def set_document_status(s: "Session", doc: Document, status: str, actor: "User") -> Document:
    status = (status or "").strip().lower()
    if status not in VALID_DOCUMENT_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(VALID_DOCUMENT_STATUSES)}")
    old = doc.status
    doc.status = status
    doc.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="document.status",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"old": old, "new": status},
    )
    return doc


def document_bytes(doc: Document) -> bytes:
    if not doc.file_data:
        raise NotFoundError("Document has no stored data")
    try:
        return decode_base64(doc.file_data)
    except ValueError:
        logger.error("Stored data for document %s is not valid base64", doc.id)
        raise NotFoundError("Document data unavailable")
