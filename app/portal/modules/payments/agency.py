from __future__ import annotations

from flask import Blueprint, Response, g, jsonify, render_template, request

from app.portal.db import db_session
from app.portal.errors import NotFoundError, ValidationError
from app.portal.events import publish
from app.portal.modules.agencies.models import Agency
from app.portal.modules.payments.service import (
    agency_mark_payment,
    agency_payment_stats,
    agency_update_payment,
    attach_receipt,
    create_offline_payment,
    get_agency_payment,
    get_offline_payment,
    list_offline_payments,
    list_payments,
)
from app.portal.modules.settings.service import get_settings
from app.portal.rbac import agency_scope, require_agency
from app.portal.utils import decode_base64

bp = Blueprint("payments_agency", __name__)

_RECEIPT_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "application/pdf": ".pdf",
    "image/gif": ".gif",
}


@bp.get("/api/agency/payments")
@require_agency
def payments_list():
    s = db_session()
    payments = list_payments(
        s,
        agency_id=agency_scope(),
        payment_status=(request.args.get("paymentStatus") or "").strip() or None,
    )
    return jsonify({"payments": [p.to_dict() for p in payments]})


@bp.post("/api/agency/payments")
@require_agency
def payments_mark():
    s = db_session()
    u = g.current_user
    payload = request.get_json(silent=True) or {}
    payment = agency_mark_payment(s, get_agency_payment(s, payload.get("paymentId"), agency_scope()), payload.get("paymentStatus") or "", u)
    s.commit()
    publish("payment", "updated", {"id": payment.id, "paymentStatus": payment.payment_status})
    return jsonify({"success": True, "payment": payment.to_dict()})


@bp.put("/api/agency/payments")
@require_agency
def payments_update():
    s = db_session()
    u = g.current_user
    payload = request.get_json(silent=True) or {}
    payment = agency_update_payment(s, get_agency_payment(s, payload.get("paymentId"), agency_scope()), payload, u)
    s.commit()
    return jsonify({"success": True, "payment": payment.to_dict()})


@bp.post("/api/agency/payments/receipt")
@require_agency
def payments_receipt_upload():
    s = db_session()
    u = g.current_user
    payment_id = request.form.get("paymentId")
    f = request.files.get("receipt")
    if not payment_id or not f or not f.filename:
        raise ValidationError("Payment ID and receipt file are required")
    payment = get_agency_payment(s, payment_id, agency_scope())
    attach_receipt(s, payment, filename=f.filename, mime_type=f.mimetype, content=f.read(), actor=u)
    s.commit()
    publish("payment", "receipt_uploaded", {"id": payment.id})
    return jsonify({"success": True, "message": "Receipt uploaded successfully", "paymentId": payment.id})


@bp.get("/api/agency/payment-stats")
@require_agency
def payments_stats():
    return jsonify(agency_payment_stats(db_session(), agency_scope()))


# ---------- Offline payments ----------
@bp.post("/api/agency/payments/offline")
@require_agency
def offline_create():
    s = db_session()
    op = create_offline_payment(s, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    publish("payment", "offline_created", {"id": op.id, "agencyId": op.agency_id})
    return jsonify({"success": True, "message": "Offline payment record saved successfully", "id": op.id}), 201


@bp.get("/api/agency/payments/offline/list")
@require_agency
def offline_list():
    payments = list_offline_payments(db_session(), agency_id=agency_scope())
    return jsonify({"payments": [p.to_dict() for p in payments]})


@bp.get("/api/agency/payments/offline/receipt/<int:offline_id>")
@require_agency
def offline_receipt(offline_id: int):
    s = db_session()
    op = get_offline_payment(s, offline_id, agency_id=agency_scope())
    # An uploaded receipt image/PDF (data URL) is served as-is.
    if op.receipt_file and op.receipt_file.startswith("data:") and "," in op.receipt_file:
        header, data = op.receipt_file.split(",", 1)
        mimetype = header[5:].split(";", 1)[0] or "application/octet-stream"
        ext = _RECEIPT_EXTENSIONS.get(mimetype, "")
        try:
            content = decode_base64(data)
        except ValueError:
            raise NotFoundError("Receipt file not available")
        return Response(
            content,
            mimetype=mimetype,
            headers={"Content-Disposition": f'inline; filename="receipt-{op.id}{ext}"'},
        )
    html = render_template(
        "payments/offline_receipt.html",
        payment=op,
        agency=s.get(Agency, op.agency_id),
        settings=get_settings(s),
    )
    return Response(html, mimetype="text/html")
