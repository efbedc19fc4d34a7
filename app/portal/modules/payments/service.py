from __future__ import annotations

import base64
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from flask import current_app, has_app_context
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import flag_modified

from app.portal.audit import record_event
from app.portal.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.portal.modules.agencies.models import Agency
from app.portal.modules.applications.models import Application
from app.portal.modules.payments.models import (
    TRACKED_DOCUMENT_TYPES,
    VALID_LEAD_STATUSES,
    VALID_OFFLINE_STATUSES,
    VALID_OFFLINE_TYPES,
    VALID_PAYMENT_STATUSES,
    OfflinePayment,
    Payment,
    default_document_flags,
)
from app.portal.utils import clean, month_key, parse_date, parse_float

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.portal.models import User

logger = logging.getLogger(__name__)

FALLBACK_COMMISSION_RATE = 10.0
VERIFIED_STATUSES = ("verified", "approved")
REVENUE_STATUSES = ("paid", "verified", "approved")


def _default_rate() -> float:
    if has_app_context():
        return float(current_app.config.get("DEFAULT_COMMISSION_RATE", FALLBACK_COMMISSION_RATE))
    return FALLBACK_COMMISSION_RATE


def commission_rate_for(s: "Session", agency_id: int | None) -> float:
    """The agency's own rate, or the configured default when it has none."""
    agency = s.get(Agency, agency_id) if agency_id else None
    if agency is not None and agency.commission_rate is not None:
        return float(agency.commission_rate)
    return _default_rate()


def compute_commission(fee: float | None, rate: float) -> float:
    return round((fee or 0) * rate / 100.0, 2)


def get_payment(s: "Session", payment_id: Any) -> Payment:
    try:
        pid = int(payment_id)
    except (TypeError, ValueError):
        raise NotFoundError("Payment record not found")
    payment = s.get(Payment, pid)
    if not payment:
        raise NotFoundError("Payment record not found")
    return payment


def get_agency_payment(s: "Session", payment_id: Any, agency_id: int | None) -> Payment:
    payment = get_payment(s, payment_id)
    if payment.agency_id != agency_id:
        raise NotFoundError("Payment record not found")
    return payment


def payment_for_application(s: "Session", application_id: int) -> Payment | None:
    return s.query(Payment).filter(Payment.application_id == application_id).one_or_none()


def _seed_statuses(application_status: str) -> tuple[str, str]:
    """(payment_status, lead_status) derived from an application's status."""
    if application_status == "approved":
        return "approved", "enrolled"
    if application_status == "rejected":
        return "rejected", "interested"
    if application_status == "pending":
        return "pending", "applied"
    return "pending", "interested"


def build_payment(
    s: "Session",
    application: Application,
    *,
    payment_status: str = "pending",
    lead_status: str = "applied",
) -> Payment:
    rate = commission_rate_for(s, application.agency_id)
    now = datetime.utcnow()
    return Payment(
        application_id=application.id,
        student_name=application.student_name,
        email=application.email,
        phone=application.phone,
        agency_id=application.agency_id,
        agency_name=application.agency_name,
        college_id=application.college_id,
        college_name=application.college_name,
        course_name=application.course_name,
        application_fee=application.fees or 0,
        tuition_fee=application.fees or 0,
        payment_amount=0.0,
        payment_status=payment_status,
        lead_status=lead_status,
        documents=default_document_flags(),
        commission_rate=rate,
        commission_amount=compute_commission(application.fees, rate),
        notes=f"Application for {application.course_name} at {application.college_name}",
        last_contact=now,
        created_at=now,
        updated_at=now,
    )


def create_payment_for_application(s: "Session", application: Application, actor: "User | None") -> Payment:
    if payment_for_application(s, application.id) is not None:
        raise ConflictError("Payment record already exists")
    payment = build_payment(s, application)
    s.add(payment)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="payment.create",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={"application_id": application.id, "commission_amount": payment.commission_amount},
    )
    return payment


def _backfill(s: "Session", *, seed_from_application: bool) -> dict[str, int]:
    created = skipped = failed = 0
    for app_id in [row[0] for row in s.query(Application.id).order_by(Application.id).all()]:
        if payment_for_application(s, app_id) is not None:
            skipped += 1
            continue
        application = s.get(Application, app_id)
        try:
            with s.begin_nested():
                if seed_from_application:
                    pay_status, lead_status = _seed_statuses(application.status)
                    payment = build_payment(s, application, payment_status=pay_status, lead_status=lead_status)
                else:
                    payment = build_payment(s, application)
                s.add(payment)
                s.flush()
            created += 1
        except IntegrityError:
            # Another writer created it between our check and insert.
            logger.info("Payment for application %s already exists; skipping", app_id)
            skipped += 1
        except Exception as e:
            logger.error("Failed to create payment for application %s: %s", app_id, e)
            failed += 1
    return {"created": created, "skipped": skipped, "failed": failed}


def sync_payments(s: "Session", actor: "User | None") -> dict[str, int]:
    """Create the missing Payment for every Application. Safe to run repeatedly."""
    result = _backfill(s, seed_from_application=False)
    logger.info("Payment sync: created=%s skipped=%s failed=%s", result["created"], result["skipped"], result["failed"])
    record_event(s, actor=actor, action="payment.sync", entity_type="Payment", metadata=result)
    return result


def migrate_payments(s: "Session", actor: "User | None") -> dict[str, int]:
    """Like sync_payments, but seeds payment/lead status from each application's status."""
    result = _backfill(s, seed_from_application=True)
    logger.info("Payment migration: created=%s skipped=%s failed=%s", result["created"], result["skipped"], result["failed"])
    record_event(s, actor=actor, action="payment.migrate", entity_type="Payment", metadata=result)
    return result


def _status_or_error(raw: Any, valid: tuple[str, ...], label: str) -> str | None:
    value = clean(raw)
    if value is None:
        return None
    value = value.lower()
    if value not in valid:
        raise ValidationError(f"Invalid {label}. Must be one of: {', '.join(valid)}")
    return value


def _set_documents(payment: Payment, docs: dict) -> None:
    payment.documents = docs
    flag_modified(payment, "documents")


def admin_update_payment(s: "Session", payment: Payment, payload: dict, actor: "User") -> Payment:
    changes: dict[str, Any] = {}
    status = _status_or_error(payload.get("paymentStatus"), VALID_PAYMENT_STATUSES, "payment status")
    if status and status != payment.payment_status:
        changes["payment_status"] = {"old": payment.payment_status, "new": status}
        payment.payment_status = status
        if status in VERIFIED_STATUSES:
            payment.verified_at = datetime.utcnow()
            payment.verified_by = actor.id
    lead = _status_or_error(payload.get("leadStatus"), VALID_LEAD_STATUSES, "lead status")
    if lead and lead != payment.lead_status:
        changes["lead_status"] = {"old": payment.lead_status, "new": lead}
        payment.lead_status = lead
    if clean(payload.get("adminNotes")):
        payment.admin_notes = payload["adminNotes"].strip()
        changes["admin_notes"] = True
    if clean(payload.get("notes")):
        payment.notes = payload["notes"].strip()
        changes["notes"] = True
    if payload.get("paymentAmount") not in (None, ""):
        amount = parse_float(payload.get("paymentAmount"))
        if amount is None or amount < 0:
            raise ValidationError("Payment amount must be a non-negative number")
        changes["payment_amount"] = {"old": payment.payment_amount, "new": amount}
        payment.payment_amount = amount
    if "commissionPaid" in payload:
        payment.commission_paid = bool(payload.get("commissionPaid"))
        changes["commission_paid"] = payment.commission_paid

    requested = payload.get("requestDocuments")
    if isinstance(requested, list) and requested:
        docs = dict(payment.documents or default_document_flags())
        for doc_type in requested:
            if doc_type in docs:
                docs[doc_type] = {**docs[doc_type], "admin_requested": True}
        _set_documents(payment, docs)
        _add_pending_documents(s, payment.application_id, [d for d in requested if d in TRACKED_DOCUMENT_TYPES])
        changes["requested_documents"] = list(requested)

    payment.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="payment.update",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={"changes": changes},
    )
    return payment


def _add_pending_documents(s: "Session", application_id: int, doc_types: list[str]) -> None:
    application = s.get(Application, application_id)
    if application is None or not doc_types:
        return
    pending = list(application.pending_documents or [])
    for t in doc_types:
        if t not in pending:
            pending.append(t)
    application.pending_documents = pending


def agency_mark_payment(s: "Session", payment: Payment, payment_status: str, actor: "User") -> Payment:
    """Agency-reported outcome: ``paid`` waits for admin approval, ``failed`` is final."""
    status = (payment_status or "").strip().lower()
    if status == "paid":
        payment.payment_status = "pending_approval"
        payment.payment_date = datetime.utcnow()
    elif status == "failed":
        payment.payment_status = "failed"
    else:
        raise ValidationError("paymentStatus must be 'paid' or 'failed'")
    payment.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="payment.agency_mark",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={"reported": status, "payment_status": payment.payment_status},
    )
    return payment


def agency_update_payment(s: "Session", payment: Payment, payload: dict, actor: "User") -> Payment:
    if payload.get("paymentAmount") not in (None, ""):
        amount = parse_float(payload.get("paymentAmount"))
        if amount is None or amount < 0:
            raise ValidationError("Payment amount must be a non-negative number")
        payment.payment_amount = amount
    lead = _status_or_error(payload.get("leadStatus"), VALID_LEAD_STATUSES, "lead status")
    if lead:
        payment.lead_status = lead
    if "notes" in payload:
        payment.agency_notes = (payload.get("notes") or "").strip()
    payment.last_contact = datetime.utcnow()
    payment.updated_at = datetime.utcnow()
    record_event(s, actor=actor, action="payment.agency_update", entity_type="Payment", entity_id=str(payment.id))
    return payment


def attach_receipt(
    s: "Session",
    payment: Payment,
    *,
    filename: str,
    mime_type: str | None,
    content: bytes,
    actor: "User",
) -> Payment:
    if not content:
        raise ValidationError("Receipt file is empty")
    payment.payment_receipt = {
        "filename": filename,
        "size": len(content),
        "mime_type": mime_type or "application/octet-stream",
        "data": base64.b64encode(content).decode("ascii"),
        "uploaded_at": datetime.utcnow().isoformat(),
        "uploaded_by": actor.id,
    }
    payment.payment_status = "pending_approval"
    payment.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="payment.receipt_upload",
        entity_type="Payment",
        entity_id=str(payment.id),
        metadata={"filename": filename, "size": len(content)},
    )
    return payment


def mark_document_uploaded(
    s: "Session", application_ref: str, doc_type: str, doc_name: str, *, agency_id: int | None = None
) -> str | None:
    """
    Flip the matching tracked-document flag on the application's payment to ``uploaded``.

    ``application_ref`` may be the application code or its numeric id. The tracked type
    is picked by substring match against the document type, then its name. Returns the
    tracked type that was updated, or None when nothing matched.
    """
    ref = (application_ref or "").strip()
    q = s.query(Application).filter(Application.application_code == ref)
    if ref.isdigit():
        q = s.query(Application).filter(or_(Application.application_code == ref, Application.id == int(ref)))
    application = q.first()
    if application is None:
        logger.info("No application for document ref %r; skipping flag update", ref)
        return None
    if agency_id is not None and application.agency_id != agency_id:
        logger.warning("Document ref %r belongs to another agency; skipping flag update", ref)
        return None

    tracked = _match_tracked_type(doc_type) or _match_tracked_type(doc_name)
    if tracked is None:
        return None

    pending = [d for d in (application.pending_documents or []) if d != tracked]
    if pending != list(application.pending_documents or []):
        application.pending_documents = pending

    payment = payment_for_application(s, application.id)
    if payment is None:
        logger.info("Application %s has no payment yet; skipping flag update", application.id)
        return tracked
    docs = dict(payment.documents or default_document_flags())
    docs[tracked] = {
        **docs.get(tracked, {}),
        "status": "uploaded",
        "uploaded_at": datetime.utcnow().isoformat(),
        "admin_requested": False,
    }
    _set_documents(payment, docs)
    payment.updated_at = datetime.utcnow()
    return tracked


def _match_tracked_type(text: str | None) -> str | None:
    lowered = (text or "").lower()
    for t in TRACKED_DOCUMENT_TYPES:
        if t in lowered:
            return t
    return None


def list_payments(
    s: "Session",
    *,
    agency_id: int | None = None,
    payment_status: str | None = None,
    search: str | None = None,
) -> list[Payment]:
    q = s.query(Payment)
    if agency_id is not None:
        q = q.filter(Payment.agency_id == agency_id)
    if payment_status and payment_status != "all":
        q = q.filter(Payment.payment_status == payment_status)
    if search:
        like = f"%{search}%"
        q = q.filter(
            (Payment.student_name.ilike(like)) | (Payment.email.ilike(like)) | (Payment.agency_name.ilike(like))
        )
    return q.order_by(Payment.created_at.desc(), Payment.id.desc()).all()


def list_stats(payments: list[Payment]) -> dict[str, Any]:
    counts = Counter(p.payment_status for p in payments)
    return {
        "total": len(payments),
        "pending": counts.get("pending", 0),
        "pendingApproval": counts.get("pending_approval", 0),
        "paid": counts.get("paid", 0),
        "verified": counts.get("verified", 0),
        "approved": counts.get("approved", 0),
        "rejected": counts.get("rejected", 0),
        "failed": counts.get("failed", 0),
        "totalCommission": round(sum(p.commission_amount or 0 for p in payments), 2),
    }


def _revenue(p: Payment) -> float:
    return float(p.payment_amount or p.application_fee or 0)


def payment_stats(s: "Session", *, agency_id: int | None = None) -> dict[str, Any]:
    q = s.query(Payment)
    if agency_id is not None:
        q = q.filter(Payment.agency_id == agency_id)
    payments = q.all()
    total = len(payments)
    total_revenue = sum(_revenue(p) for p in payments)

    now = datetime.utcnow()
    this_month = month_key(now)
    prev_month = month_key(now.replace(day=1) - timedelta(days=1))
    cur_rev = sum(_revenue(p) for p in payments if month_key(p.created_at) == this_month)
    prev_rev = sum(_revenue(p) for p in payments if month_key(p.created_at) == prev_month)
    if prev_rev > 0:
        growth = round((cur_rev - prev_rev) / prev_rev * 100, 1)
    elif cur_rev > 0:
        growth = 100.0
    else:
        growth = 0.0

    counts = Counter(p.payment_status for p in payments)
    return {
        "totalRevenue": round(total_revenue, 2),
        "totalPayments": total,
        "pendingPayments": counts.get("pending", 0) + counts.get("pending_approval", 0),
        "completedPayments": sum(counts.get(st, 0) for st in REVENUE_STATUSES),
        "failedPayments": counts.get("failed", 0),
        "monthlyGrowth": growth,
        "averagePayment": round(total_revenue / total) if total else 0,
        "totalCommissions": round(sum(p.commission_amount or 0 for p in payments), 2),
    }


def agency_payment_stats(s: "Session", agency_id: int) -> dict[str, Any]:
    payments = s.query(Payment).filter(Payment.agency_id == agency_id).all()
    total = sum(_revenue(p) for p in payments)
    cutoff = datetime.utcnow() - timedelta(days=30)
    monthly = sum(_revenue(p) for p in payments if p.created_at >= cutoff)
    total_apps = s.query(Application).filter(Application.agency_id == agency_id).count()
    return {
        "totalPayments": round(total, 2),
        "monthlyPayments": round(monthly, 2),
        "monthlyGrowth": round(monthly / total * 100) if total > 0 else 0,
        "totalApplications": total_apps,
        "approvedPayments": sum(1 for p in payments if p.payment_status == "approved"),
        "totalCommission": round(sum(p.commission_amount or 0 for p in payments), 2),
    }


def payment_chart_data(s: "Session") -> dict[str, Any]:
    """Counts by status plus per-month revenue for the last six months."""
    payments = s.query(Payment).all()
    counts = Counter(p.payment_status for p in payments)
    now = datetime.utcnow()
    months: list[str] = []
    cursor = now.replace(day=1)
    for _ in range(6):
        months.append(month_key(cursor))
        cursor = (cursor - timedelta(days=1)).replace(day=1)
    months.reverse()
    revenue = {m: 0.0 for m in months}
    for p in payments:
        key = month_key(p.created_at)
        if key in revenue and p.payment_status in REVENUE_STATUSES:
            revenue[key] += _revenue(p)
    return {
        "paid": sum(counts.get(st, 0) for st in REVENUE_STATUSES),
        "pending": counts.get("pending", 0) + counts.get("pending_approval", 0),
        "failed": counts.get("failed", 0) + counts.get("rejected", 0),
        "byStatus": dict(counts),
        "monthly": [{"month": m, "revenue": round(revenue[m], 2)} for m in months],
    }


def receipt_info(payment: Payment) -> dict[str, Any]:
    if not payment.payment_receipt:
        raise NotFoundError("Receipt not found")
    return {
        "receipt": payment.payment_receipt,
        "studentName": payment.student_name,
        "amount": payment.payment_amount or payment.application_fee,
    }


def tracked_document(s: "Session", payment: Payment, doc_type: str) -> dict[str, Any]:
    """The latest uploaded Document behind one of the payment's tracked flags."""
    from app.portal.modules.documents.models import Document

    if doc_type not in TRACKED_DOCUMENT_TYPES:
        raise NotFoundError("Document not found")
    application = s.get(Application, payment.application_id)
    refs = [str(payment.application_id)]
    if application is not None:
        refs.append(application.application_code)
    candidates = (
        s.query(Document)
        .filter(Document.application_ref.in_(refs))
        .order_by(Document.uploaded_at.desc(), Document.id.desc())
        .all()
    )
    for doc in candidates:
        if _match_tracked_type(doc.type) == doc_type or _match_tracked_type(doc.name) == doc_type:
            if doc.file_data:
                return {"fileData": doc.file_data, "name": doc.name, "type": doc_type, "documentId": doc.id}
    raise NotFoundError("Document not found")


# ---------- Offline payments ----------
def create_offline_payment(s: "Session", payload: dict, actor: "User") -> OfflinePayment:
    if actor.agency_id is None:
        raise ForbiddenError("No agency linked to this account")
    required = ("beneficiary", "paymentType", "accountHolderName", "transactionId", "amount", "txnDate")
    missing = [k for k in required if payload.get(k) in (None, "")]
    if missing:
        raise ValidationError("Missing required fields", details=missing)
    payment_type = (payload.get("paymentType") or "").strip().lower()
    if payment_type not in VALID_OFFLINE_TYPES:
        raise ValidationError(f"Invalid payment type. Must be one of: {', '.join(VALID_OFFLINE_TYPES)}")
    amount = parse_float(payload.get("amount"))
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be a positive number")
    try:
        txn_date = parse_date(payload.get("txnDate"))
    except ValueError:
        raise ValidationError("Invalid transaction date")

    now = datetime.utcnow()
    op = OfflinePayment(
        agency_id=actor.agency_id,
        beneficiary=clean(payload.get("beneficiary")),
        payment_type=payment_type,
        account_holder_name=clean(payload.get("accountHolderName")),
        transaction_id=clean(payload.get("transactionId")),
        amount=amount,
        txn_date=txn_date,
        status="pending",
        receipt_file=clean(payload.get("receiptFile")),
        created_at=now,
        updated_at=now,
    )
    s.add(op)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="offline_payment.create",
        entity_type="OfflinePayment",
        entity_id=str(op.id),
        metadata={"amount": amount, "transaction_id": op.transaction_id},
    )
    return op


def list_offline_payments(s: "Session", *, agency_id: int | None = None, status: str | None = None) -> list[OfflinePayment]:
    q = s.query(OfflinePayment)
    if agency_id is not None:
        q = q.filter(OfflinePayment.agency_id == agency_id)
    if status and status != "all":
        q = q.filter(OfflinePayment.status == status)
    return q.order_by(OfflinePayment.created_at.desc(), OfflinePayment.id.desc()).all()


def get_offline_payment(s: "Session", offline_id: Any, *, agency_id: int | None = None) -> OfflinePayment:
    try:
        oid = int(offline_id)
    except (TypeError, ValueError):
        raise NotFoundError("Offline payment not found")
    op = s.get(OfflinePayment, oid)
    if not op or (agency_id is not None and op.agency_id != agency_id):
        raise NotFoundError("Offline payment not found")
    return op


def set_offline_status(s: "Session", op: OfflinePayment, status: str, actor: "User") -> OfflinePayment:
    new_status = _status_or_error(status, VALID_OFFLINE_STATUSES, "status")
    if not new_status:
        raise ValidationError("Status is required")
    old = op.status
    op.status = new_status
    op.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="offline_payment.status",
        entity_type="OfflinePayment",
        entity_id=str(op.id),
        metadata={"old": old, "new": new_status},
    )
    return op
