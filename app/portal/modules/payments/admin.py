from __future__ import annotations

from flask import Blueprint, Response, g, jsonify, render_template, request

from app.portal.db import db_session
from app.portal.errors import ValidationError
from app.portal.events import publish
from app.portal.modules.agencies.models import Agency
from app.portal.modules.applications.service import get_application
from app.portal.modules.payments.service import (
    admin_update_payment,
    create_payment_for_application,
    get_offline_payment,
    get_payment,
    list_offline_payments,
    list_payments,
    list_stats,
    migrate_payments,
    payment_chart_data,
    payment_stats,
    receipt_info,
    set_offline_status,
    sync_payments,
    tracked_document,
)
from app.portal.modules.settings.service import get_settings
from app.portal.pdf import payment_receipt_pdf
from app.portal.rbac import require_admin
from app.portal.utils import parse_int

bp = Blueprint("payments_admin", __name__)


# ---------- Backfill jobs ----------
@bp.post("/api/sync-payments")
@require_admin
def payments_sync():
    s = db_session()
    result = sync_payments(s, g.current_user)
    s.commit()
    if result["created"]:
        publish("payment", "synced", result)
    return jsonify({"success": True, "message": f"Created {result['created']} payment records.", **result})


@bp.post("/api/migrate-payments")
@require_admin
def payments_migrate():
    s = db_session()
    result = migrate_payments(s, g.current_user)
    s.commit()
    if result["created"]:
        publish("payment", "synced", result)
    return jsonify(
        {
            "success": True,
            "message": (
                f"Migration completed. Created {result['created']} payment records, "
                f"skipped {result['skipped']} existing records."
            ),
            **result,
        }
    )


# ---------- Payments ----------
@bp.get("/api/admin/payments")
@require_admin
def payments_list():
    s = db_session()
    payments = list_payments(
        s,
        agency_id=parse_int(request.args.get("agencyId")),
        payment_status=(request.args.get("paymentStatus") or "").strip() or None,
        search=(request.args.get("search") or "").strip() or None,
    )
    return jsonify({"payments": [p.to_dict() for p in payments], "stats": list_stats(payments)})


@bp.post("/api/admin/payments")
@require_admin
def payments_create():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    if not payload.get("applicationId"):
        raise ValidationError("applicationId is required")
    payment = create_payment_for_application(s, get_application(s, payload.get("applicationId")), g.current_user)
    s.commit()
    publish("payment", "created", payment.to_dict())
    return jsonify({"success": True, "payment": payment.to_dict()}), 201


@bp.put("/api/admin/payments")
@require_admin
def payments_update():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    payment = admin_update_payment(s, get_payment(s, payload.get("paymentId")), payload, g.current_user)
    s.commit()
    publish("payment", "updated", {"id": payment.id, "paymentStatus": payment.payment_status})
    return jsonify({"success": True, "payment": payment.to_dict()})


@bp.get("/api/admin/payments/stats")
@require_admin
def payments_stats():
    return jsonify(payment_stats(db_session()))


@bp.get("/api/admin/payments/chart-data")
@require_admin
def payments_chart_data():
    return jsonify(payment_chart_data(db_session()))


@bp.get("/api/admin/payments/<int:payment_id>")
@require_admin
def payment_detail(payment_id: int):
    return jsonify({"payment": get_payment(db_session(), payment_id).to_dict()})


@bp.get("/api/admin/payments/<int:payment_id>/documents/<doc_type>")
@require_admin
def payment_document(payment_id: int, doc_type: str):
    s = db_session()
    return jsonify(tracked_document(s, get_payment(s, payment_id), doc_type))


@bp.get("/api/admin/payments/receipt/<int:payment_id>")
@require_admin
def payment_receipt(payment_id: int):
    return jsonify(receipt_info(get_payment(db_session(), payment_id)))


@bp.get("/api/admin/payments/receipt/<int:payment_id>/download")
@require_admin
def payment_receipt_download(payment_id: int):
    s = db_session()
    payment = get_payment(s, payment_id)
    settings = get_settings(s)
    pdf_bytes = payment_receipt_pdf(
        payment.to_dict(),
        system_name=settings.system_name,
        currency=(settings.payment_settings or {}).get("currency") or "",
    )
    return Response(
        pdf_bytes,
        mimetype="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=receipt_{payment.id}.pdf"},
    )


# ---------- Offline payments ----------
@bp.get("/api/admin/payments/offline")
@require_admin
def offline_list():
    s = db_session()
    payments = list_offline_payments(s, status=(request.args.get("status") or "").strip() or None)
    names = dict(s.query(Agency.id, Agency.name).all())
    rows = []
    for p in payments:
        row = p.to_dict()
        row["agencyName"] = names.get(p.agency_id)
        rows.append(row)
    return jsonify({"payments": rows})


@bp.patch("/api/admin/payments/offline")
@require_admin
def offline_set_status():
    s = db_session()
    payload = request.get_json(silent=True) or {}
    op = set_offline_status(s, get_offline_payment(s, payload.get("paymentId")), payload.get("status") or "", g.current_user)
    s.commit()
    publish("payment", "offline_status", {"id": op.id, "status": op.status})
    return jsonify({"success": True, "payment": op.to_dict()})


@bp.get("/api/admin/payments/offline/receipt/<int:offline_id>")
@require_admin
def offline_receipt(offline_id: int):
    s = db_session()
    op = get_offline_payment(s, offline_id)
    agency = s.get(Agency, op.agency_id)
    html = render_template("payments/offline_receipt.html", payment=op, agency=agency, settings=get_settings(s))
    return Response(
        html,
        mimetype="text/html",
        headers={"Content-Disposition": f'attachment; filename="offline-receipt-{op.id}.html"'},
    )
