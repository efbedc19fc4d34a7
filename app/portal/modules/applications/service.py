from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.portal.audit import record_event
from app.portal.errors import ForbiddenError, NotFoundError, ValidationError
from app.portal.models import ROLE_AGENCY
from app.portal.modules.applications.models import VALID_APPLICATION_STATUSES, Application
from app.portal.modules.colleges.models import College, Course
from app.portal.modules.documents.models import Document
from app.portal.utils import clean, new_application_code, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.portal.models import User

logger = logging.getLogger(__name__)

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Flat form fields folded into Application.student_details
STUDENT_DETAIL_FIELDS = (
    "dateOfBirth",
    "nationality",
    "address",
    "personalStatement",
    "workExperience",
    "previousEducation",
    "gpa",
    "englishProficiency",
    "fatherName",
    "motherName",
    "religion",
    "caste",
    "maritalStatus",
)

# Fields an agency may edit after submission
AGENCY_EDITABLE = {
    "studentName": "student_name",
    "email": "email",
    "phone": "phone",
    "abcId": "abc_id",
    "debId": "deb_id",
}

# Fields an admin may edit through PUT /applications/<id> (status handled separately)
ADMIN_EDITABLE = {
    **AGENCY_EDITABLE,
    "collegeName": "college_name",
    "courseName": "course_name",
    "courseType": "course_type",
    "stream": "stream",
    "agencyName": "agency_name",
}


def document_status_for(application_status: str) -> str:
    """Document status implied by an application status."""
    if application_status == "approved":
        return "approved"
    if application_status == "rejected":
        return "rejected"
    return "pending"


def _application_refs(application: Application) -> list[str]:
    return [application.application_code, str(application.id)]


def related_documents(s: "Session", application: Application) -> list[Document]:
    return (
        s.query(Document)
        .filter(Document.application_ref.in_(_application_refs(application)))
        .order_by(Document.uploaded_at.desc(), Document.id.desc())
        .all()
    )


def _unique_code(s: "Session") -> str:
    code = new_application_code()
    while s.query(Application.id).filter(Application.application_code == code).first() is not None:
        code = new_application_code()
    return code


def _student_details(payload: dict) -> dict:
    details = dict(payload.get("studentDetails") or {})
    for key in STUDENT_DETAIL_FIELDS:
        if payload.get(key) not in (None, ""):
            details[key] = payload[key]
    return details


def _academic_records(raw: Any) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(r, dict) for r in raw):
        raise ValidationError("academicRecords must be a list of objects")
    return raw


def get_application(s: "Session", application_id: Any) -> Application:
    app_id = parse_int(application_id)
    application = s.get(Application, app_id) if app_id is not None else None
    if application is None and application_id:
        application = (
            s.query(Application).filter(Application.application_code == str(application_id)).one_or_none()
        )
    if application is None:
        raise NotFoundError("Application not found")
    return application


def get_application_for(s: "Session", application_id: Any, user: "User") -> Application:
    """Fetch an application the user may see. Agencies only see their own."""
    application = get_application(s, application_id)
    if user.role == ROLE_AGENCY and application.agency_id != user.agency_id:
        raise ForbiddenError("Unauthorized to access this application")
    return application


def create_application(s: "Session", payload: dict, actor: "User") -> Application:
    """
    Create a pending application for the actor's agency, then its Payment.
    The payment write is best-effort: a failure there is logged and the
    application is still returned.
    """
    from app.portal.modules.payments.service import build_payment

    if not clean(payload.get("studentName")) or not clean(payload.get("email")) or not clean(payload.get("phone")):
        raise ValidationError("Student name, email, and phone are required")
    if payload.get("collegeId") in (None, "") or payload.get("courseId") in (None, ""):
        raise ValidationError("College and course selection are required")
    if actor.agency_id is None:
        raise ForbiddenError("No agency linked to this account")

    college_id = parse_int(payload.get("collegeId"))
    course_id = parse_int(payload.get("courseId"))
    college = s.get(College, college_id) if college_id is not None else None
    if college is None:
        raise ValidationError("Invalid college selection")
    course = s.get(Course, course_id) if course_id is not None else None
    if course is None or course.college_id != college.id:
        raise ValidationError("Invalid course selection")

    fees = parse_float(payload.get("fees"))
    if fees is None:
        fees = course.fee or 0.0
    if fees < 0:
        raise ValidationError("Fees cannot be negative")

    now = datetime.utcnow()
    application = Application(
        application_code=_unique_code(s),
        student_name=clean(payload.get("studentName")),
        email=clean(payload.get("email")).lower(),  # type: ignore[union-attr]
        phone=clean(payload.get("phone")),
        agency_id=actor.agency_id,
        agency_name=actor.agency_name or actor.name,
        college_id=college.id,
        college_name=college.name,
        course_id=course.id,
        course_name=course.name,
        course_type=clean(payload.get("courseType")) or course.course_type,
        stream=clean(payload.get("stream")),
        status="pending",
        fees=fees,
        pending_documents=[],
        abc_id=clean(payload.get("abcId")),
        deb_id=clean(payload.get("debId")),
        academic_records=_academic_records(payload.get("academicRecords")),
        student_details=_student_details(payload),
        pdf_generated=False,
        created_at=now,
        updated_at=now,
    )
    s.add(application)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="application.create",
        entity_type="Application",
        entity_id=str(application.id),
        metadata={"code": application.application_code, "college": college.name, "course": course.name},
    )

    try:
        with s.begin_nested():
            s.add(build_payment(s, application))
            s.flush()
    except Exception as e:
        logger.error("Payment creation failed for application %s: %s", application.id, e)
    return application


def agency_update_application(s: "Session", application: Application, payload: dict, actor: "User") -> Application:
    changes: dict[str, Any] = {}
    for key, attr in AGENCY_EDITABLE.items():
        if key in payload and clean(payload.get(key)) != getattr(application, attr):
            new = clean(payload.get(key))
            if attr in ("student_name", "email", "phone") and not new:
                raise ValidationError(f"{key} cannot be empty")
            changes[attr] = {"old": getattr(application, attr), "new": new}
            setattr(application, attr, new)
    if "studentDetails" in payload or any(k in payload for k in STUDENT_DETAIL_FIELDS):
        application.student_details = {**(application.student_details or {}), **_student_details(payload)}
        changes["student_details"] = True
    if "academicRecords" in payload:
        application.academic_records = _academic_records(payload.get("academicRecords"))
        changes["academic_records"] = True
    if changes:
        application.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=actor,
            action="application.update",
            entity_type="Application",
            entity_id=str(application.id),
            metadata={"changes": changes},
        )
    return application


def set_application_status(s: "Session", application: Application, status: str, actor: "User") -> int:
    """
    Set the status and bring every related Document in line with it.
    Returns how many documents changed.
    """
    status = (status or "").strip().lower()
    if status not in VALID_APPLICATION_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(VALID_APPLICATION_STATUSES)}")
    old = application.status
    application.status = status
    application.updated_at = datetime.utcnow()

    doc_status = document_status_for(status)
    changed = 0
    for doc in related_documents(s, application):
        if doc.status != doc_status:
            doc.status = doc_status
            doc.updated_at = datetime.utcnow()
            changed += 1

    record_event(
        s,
        actor=actor,
        action="application.status",
        entity_type="Application",
        entity_id=str(application.id),
        metadata={"old": old, "new": status, "documents_updated": changed},
    )
    return changed


def admin_update_application(s: "Session", application: Application, payload: dict, actor: "User") -> Application:
    for key, attr in ADMIN_EDITABLE.items():
        if key in payload:
            setattr(application, attr, clean(payload.get(key)))
    if "fees" in payload:
        fees = parse_float(payload.get("fees"))
        if fees is None or fees < 0:
            raise ValidationError("Fees must be a non-negative number")
        application.fees = fees
    if "pendingDocuments" in payload:
        application.pending_documents = list(payload.get("pendingDocuments") or [])
    if "studentDetails" in payload:
        application.student_details = {**(application.student_details or {}), **(payload.get("studentDetails") or {})}
    if "academicRecords" in payload:
        application.academic_records = _academic_records(payload.get("academicRecords"))
    application.updated_at = datetime.utcnow()
    if clean(payload.get("status")):
        set_application_status(s, application, payload["status"], actor)
    else:
        record_event(
            s,
            actor=actor,
            action="application.update",
            entity_type="Application",
            entity_id=str(application.id),
            metadata={"fields": sorted(k for k in payload if k in ADMIN_EDITABLE or k == "fees")},
        )
    return application


def delete_application(s: "Session", application: Application, actor: "User") -> None:
    """Remove the application with its payment and uploaded documents."""
    from app.portal.modules.payments.service import payment_for_application

    payment = payment_for_application(s, application.id)
    if payment is not None:
        s.delete(payment)
    docs = related_documents(s, application)
    for doc in docs:
        s.delete(doc)
    # The payment row references the application; remove it first.
    s.flush()
    record_event(
        s,
        actor=actor,
        action="application.delete",
        entity_type="Application",
        entity_id=str(application.id),
        metadata={"code": application.application_code, "documents": len(docs)},
    )
    s.delete(application)


def list_applications(
    s: "Session",
    *,
    agency_id: int | None = None,
    status: str | None = None,
    agency: str | None = None,
    search: str | None = None,
) -> list[Application]:
    q = s.query(Application)
    if agency_id is not None:
        q = q.filter(Application.agency_id == agency_id)
    if status and status != "all":
        q = q.filter(Application.status == status)
    if agency and agency != "all":
        if agency.isdigit():
            q = q.filter(Application.agency_id == int(agency))
        else:
            q = q.filter(Application.agency_name == agency)
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                Application.student_name.ilike(like),
                Application.email.ilike(like),
                Application.application_code.ilike(like),
                Application.college_name.ilike(like),
                Application.course_name.ilike(like),
            )
        )
    return q.order_by(Application.created_at.desc(), Application.id.desc()).all()


def application_with_documents(s: "Session", application: Application) -> dict:
    docs = related_documents(s, application)
    row = application.to_dict()
    row["submittedAt"] = row["createdAt"]
    row["documents"] = [d.name for d in docs]
    row["documentCount"] = len(docs)
    row["uploadedDocuments"] = [d.to_dict() for d in docs]
    return row


def pending_payment_applications(s: "Session", agency_id: int) -> list[dict]:
    apps = (
        s.query(Application)
        .filter(Application.agency_id == agency_id, Application.status.in_(("pending", "approved")))
        .order_by(Application.created_at.desc())
        .all()
    )
    return [
        {"id": a.id, "applicationId": a.application_code, "studentName": a.student_name, "fees": a.fees, "status": a.status}
        for a in apps
    ]


def requested_documents(s: "Session", agency_id: int) -> list[dict]:
    apps = s.query(Application).filter(Application.agency_id == agency_id).order_by(Application.created_at.desc()).all()
    return [
        {
            "id": a.id,
            "applicationId": a.application_code,
            "studentName": a.student_name,
            "collegeName": a.college_name,
            "courseName": a.course_name,
            "pendingDocuments": list(a.pending_documents or []),
            "status": a.status,
        }
        for a in apps
        if a.pending_documents
    ]


def application_stats(s: "Session", *, agency_id: int | None = None) -> dict[str, Any]:
    q = s.query(Application)
    if agency_id is not None:
        q = q.filter(Application.agency_id == agency_id)
    apps = q.all()
    counts = Counter(a.status for a in apps)
    now = datetime.utcnow()
    this_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_month = (this_month - timedelta(days=1)).replace(day=1)
    this_count = sum(1 for a in apps if a.created_at >= this_month)
    last_count = sum(1 for a in apps if last_month <= a.created_at < this_month)
    return {
        "total": len(apps),
        "pending": counts.get("pending", 0),
        "approved": counts.get("approved", 0),
        "rejected": counts.get("rejected", 0),
        "underReview": counts.get("processing", 0),
        "thisMonth": this_count,
        "lastMonth": last_count,
        "growthRate": round((this_count - last_count) / last_count * 100, 1) if last_count else 0,
    }


def _recent_growth(apps: list[Application]) -> int:
    if not apps:
        return 0
    cutoff = datetime.utcnow() - timedelta(days=30)
    recent = sum(1 for a in apps if a.created_at >= cutoff)
    return round(recent / len(apps) * 100)


def agency_dashboard_stats(s: "Session", agency_id: int) -> dict[str, Any]:
    apps = s.query(Application).filter(Application.agency_id == agency_id).all()
    counts = Counter(a.status for a in apps)
    return {
        "totalApplications": len(apps),
        "successfulApplications": counts.get("approved", 0),
        "pendingApplications": counts.get("pending", 0),
        "rejectedApplications": counts.get("rejected", 0),
        "monthlyGrowth": _recent_growth(apps),
    }


def admin_dashboard_stats(s: "Session") -> dict[str, Any]:
    from app.portal.models import User
    from app.portal.modules.agencies.models import Agency
    from app.portal.modules.payments.models import Payment

    apps = s.query(Application).all()
    return {
        "totalUsers": s.query(User).count(),
        "activeUsers": s.query(User).filter(User.status == "active").count(),
        "agencyUsers": s.query(User).filter(User.role == ROLE_AGENCY).count(),
        "totalAgencies": s.query(Agency).count(),
        "totalColleges": s.query(College).count(),
        "totalApplications": len(apps),
        "pendingApplications": sum(1 for a in apps if a.status == "pending"),
        "totalPayments": s.query(Payment).count(),
        "monthlyGrowth": _recent_growth(apps),
    }


def application_chart_data(s: "Session", *, year: int | None = None) -> dict[str, Any]:
    """Applications per calendar month of ``year`` (default: current year)."""
    year = year or datetime.utcnow().year
    monthly = {m: 0 for m in MONTH_NAMES}
    for (created_at,) in s.query(Application.created_at).all():
        if created_at.year == year:
            monthly[MONTH_NAMES[created_at.month - 1]] += 1
    return {"year": year, "applicationData": [{"month": m, "applications": monthly[m]} for m in MONTH_NAMES]}


def mark_pdf_generated(s: "Session", application: Application, actor: "User") -> None:
    application.pdf_generated = True
    application.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="application.pdf_generated",
        entity_type="Application",
        entity_id=str(application.id),
    )
