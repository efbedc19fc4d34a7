"""
Data export and summary reports for the admin console.

Exports are flat rows (the API's camelCase dicts) rendered as CSV, JSON or XLSX.
Template reports aggregate applications per month, agency and college; revenue
is the commission earned on each application's fees at its agency's rate.
"""
from __future__ import annotations

import csv
import io
import json
from collections import Counter, defaultdict
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any

from openpyxl import Workbook

from app.portal.errors import NotFoundError, ValidationError
from app.portal.models import User
from app.portal.modules.agencies.models import Agency
from app.portal.modules.applications.models import Application
from app.portal.modules.colleges.models import College
from app.portal.modules.payments.models import Payment
from app.portal.modules.payments.service import compute_commission
from app.portal.utils import clean, month_key, parse_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

EXPORT_TYPES = ("applications", "payments", "agencies", "colleges", "users")
EXPORT_FORMATS = ("csv", "json", "excel")

MIMETYPES = {
    "csv": "text/csv",
    "json": "application/json",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
EXTENSIONS = {"csv": "csv", "json": "json", "excel": "xlsx"}

# Columns of the downloadable HTML reports: (header, row key)
REPORT_COLUMNS: dict[str, list[tuple[str, str]]] = {
    "applications": [
        ("Student Name", "studentName"),
        ("Email", "email"),
        ("Agency", "agencyName"),
        ("College", "collegeName"),
        ("Course", "courseName"),
        ("Status", "status"),
        ("Fees", "fees"),
        ("Submitted", "createdAt"),
    ],
    "agencies": [
        ("Name", "name"),
        ("Email", "email"),
        ("Phone", "phone"),
        ("Contact Person", "contactPerson"),
        ("Commission %", "commissionRate"),
        ("Status", "status"),
        ("Created", "createdAt"),
    ],
    "colleges": [
        ("Name", "name"),
        ("Location", "location"),
        ("Type", "type"),
        ("Ranking", "ranking"),
        ("Courses", "coursesCount"),
        ("Status", "status"),
    ],
    "payments": [
        ("Student", "studentName"),
        ("Agency", "agencyName"),
        ("College", "collegeName"),
        ("Fee", "applicationFee"),
        ("Amount", "paymentAmount"),
        ("Status", "paymentStatus"),
        ("Commission", "commissionAmount"),
        ("Created", "createdAt"),
    ],
    "users": [
        ("Name", "name"),
        ("Username", "username"),
        ("Email", "email"),
        ("Role", "role"),
        ("Agency", "agencyName"),
        ("Status", "status"),
        ("Last Login", "lastLogin"),
    ],
}

REPORT_TEMPLATES = ("monthly-summary", "agency-performance", "college-applications", "financial-summary")


def _model_for(data_type: str):
    return {
        "applications": Application,
        "payments": Payment,
        "agencies": Agency,
        "colleges": College,
        "users": User,
    }[data_type]


def export_rows(s: "Session", data_type: str) -> list[dict[str, Any]]:
    if data_type not in EXPORT_TYPES:
        raise ValidationError(f"Invalid dataType. Must be one of: {', '.join(EXPORT_TYPES)}")
    model = _model_for(data_type)
    records = s.query(model).order_by(model.created_at.desc(), model.id.desc()).all()
    if data_type == "colleges":
        rows = []
        for c in records:
            row = c.to_dict()
            row["coursesCount"] = len(c.courses)
            rows.append(row)
        return rows
    return [r.to_dict() for r in records]


def _row_status(row: dict) -> str:
    return str(row.get("status") or row.get("paymentStatus") or "")


def _row_agency(row: dict, data_type: str) -> str:
    if data_type == "agencies":
        return str(row.get("name") or "")
    return str(row.get("agencyName") or "")


def _bounds(date_range: dict | None) -> tuple[datetime | None, datetime | None]:
    if not date_range:
        return None, None
    try:
        start = parse_date(date_range.get("from"))
        end = parse_date(date_range.get("to"))
    except ValueError:
        raise ValidationError("dateRange must use YYYY-MM-DD dates")
    return (
        datetime.combine(start, time.min) if start else None,
        datetime.combine(end, time.max) if end else None,
    )


def apply_filters(rows: list[dict], data_type: str, filters: dict | None, date_range: dict | None) -> list[dict]:
    """Case-insensitive substring match on status and agency; inclusive date range on createdAt."""
    filters = filters or {}
    status = (clean(filters.get("status")) or "").lower()
    agency = (clean(filters.get("agency")) or "").lower()
    start, end = _bounds(date_range)

    out = []
    for row in rows:
        if status and status not in _row_status(row).lower():
            continue
        if agency and agency not in _row_agency(row, data_type).lower():
            continue
        if start or end:
            created = row.get("createdAt")
            if created:
                ts = datetime.fromisoformat(created)
                if (start and ts < start) or (end and ts > end):
                    continue
        out.append(row)
    return out


def _select_fields(rows: list[dict], include_fields: list[str] | None) -> tuple[list[dict], list[str]]:
    if include_fields:
        fields = [f for f in include_fields if isinstance(f, str)]
        return [{f: r[f] for f in fields if f in r} for r in rows], fields
    fields = list(rows[0].keys()) if rows else []
    return rows, fields


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def render_export(rows: list[dict], fmt: str, include_fields: list[str] | None = None) -> bytes:
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Invalid format. Must be one of: {', '.join(EXPORT_FORMATS)}")
    rows, fields = _select_fields(rows, include_fields)

    if fmt == "json":
        return json.dumps(rows, indent=2, default=str).encode("utf-8")

    if fmt == "csv":
        out = io.StringIO()
        if rows:
            w = csv.writer(out)
            w.writerow(fields)
            for r in rows:
                w.writerow([_cell(r.get(f)) for f in fields])
        return out.getvalue().encode("utf-8")

    wb = Workbook()
    ws = wb.active
    ws.title = "Export"
    if fields:
        ws.append(fields)
    for r in rows:
        ws.append([_cell(r.get(f)) for f in fields])
    mem = io.BytesIO()
    wb.save(mem)
    return mem.getvalue()


def export_data(s: "Session", payload: dict) -> tuple[bytes, str, str]:
    """Returns ``(content, mimetype, download_name)``."""
    data_type = clean(payload.get("dataType")) or ""
    fmt = (clean(payload.get("format")) or "csv").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Invalid format. Must be one of: {', '.join(EXPORT_FORMATS)}")
    include_fields = payload.get("includeFields")
    if include_fields is not None and not isinstance(include_fields, list):
        raise ValidationError("includeFields must be a list")

    rows = export_rows(s, data_type)
    rows = apply_filters(rows, data_type, payload.get("filters"), payload.get("dateRange"))
    content = render_export(rows, fmt, include_fields)
    return content, MIMETYPES[fmt], f"{data_type}_export.{EXTENSIONS[fmt]}"


def entity_report(s: "Session", entity: str) -> dict[str, Any]:
    """Rows + columns for the HTML table report of one entity type."""
    if entity not in REPORT_COLUMNS:
        raise NotFoundError("Unknown report")
    rows = export_rows(s, entity)
    return {
        "title": f"{entity.title()} Report",
        "columns": REPORT_COLUMNS[entity],
        "rows": rows,
        "generated_at": datetime.utcnow(),
    }


# ---------- Template reports ----------
def _revenue_by_app(apps: list[Application], agencies: dict[int, Agency]) -> dict[int, float]:
    out = {}
    for a in apps:
        agency = agencies.get(a.agency_id)
        rate = agency.commission_rate if agency and agency.commission_rate is not None else 0.0
        out[a.id] = compute_commission(a.fees, rate)
    return out


def _monthly_summary(apps: list[Application], agencies: dict[int, Agency], today: date) -> dict[str, Any]:
    monthly = [a for a in apps if a.created_at.year == today.year and a.created_at.month == today.month]
    revenue = _revenue_by_app(monthly, agencies)
    return {
        "reportType": "Monthly Summary",
        "period": today.strftime("%B %Y"),
        "summary": {
            "totalApplications": len(monthly),
            "totalRevenue": round(sum(revenue.values()), 2),
            "activeAgencies": sum(1 for ag in agencies.values() if ag.status == "active"),
            "statusBreakdown": dict(Counter(a.status for a in monthly)),
        },
        "applications": [a.to_dict() for a in monthly],
        "agencies": [
            {
                **ag.to_dict(),
                "monthlyApplications": sum(1 for a in monthly if a.agency_id == ag.id),
                "monthlyRevenue": round(sum(revenue[a.id] for a in monthly if a.agency_id == ag.id), 2),
            }
            for ag in agencies.values()
        ],
    }


def _agency_performance(apps: list[Application], agencies: dict[int, Agency]) -> dict[str, Any]:
    revenue = _revenue_by_app(apps, agencies)
    rows = []
    for ag in agencies.values():
        mine = [a for a in apps if a.agency_id == ag.id]
        approved = sum(1 for a in mine if a.status == "approved")
        rows.append(
            {
                **ag.to_dict(),
                "metrics": {
                    "totalApplications": len(mine),
                    "approvedApplications": approved,
                    "approvalRate": round(approved / len(mine) * 100, 2) if mine else 0,
                    "totalRevenue": round(sum(revenue[a.id] for a in mine), 2),
                    "averageApplicationValue": round(sum(a.fees or 0 for a in mine) / len(mine), 2) if mine else 0,
                },
                "recentApplications": [a.to_dict() for a in sorted(mine, key=lambda a: a.created_at)[-5:]],
            }
        )
    return {"reportType": "Agency Performance", "generatedAt": datetime.utcnow().isoformat(), "agencies": rows}


def _college_applications(
    apps: list[Application], agencies: dict[int, Agency], colleges: list[College]
) -> dict[str, Any]:
    rows = []
    for c in colleges:
        mine = [a for a in apps if a.college_id == c.id]
        by_agency: Counter = Counter()
        for a in mine:
            ag = agencies.get(a.agency_id)
            by_agency[ag.name if ag else "Unknown"] += 1
        rows.append(
            {
                **c.to_dict(),
                "applicationStats": {
                    "totalApplications": len(mine),
                    "statusBreakdown": dict(Counter(a.status for a in mine)),
                    "agencyBreakdown": dict(by_agency),
                    "averageTuitionFee": round(sum(a.fees or 0 for a in mine) / len(mine), 2) if mine else 0,
                },
                "courses": [
                    {**course.to_dict(), "applicationCount": sum(1 for a in mine if a.course_id == course.id)}
                    for course in c.courses
                ],
            }
        )
    return {
        "reportType": "College Applications Report",
        "generatedAt": datetime.utcnow().isoformat(),
        "colleges": rows,
        "summary": {
            "totalApplications": len(apps),
            "totalColleges": len(colleges),
            "averageApplicationsPerCollege": round(len(apps) / len(colleges), 2) if colleges else 0,
        },
    }


def _financial_summary(apps: list[Application], agencies: dict[int, Agency]) -> dict[str, Any]:
    revenue = _revenue_by_app(apps, agencies)
    total = sum(revenue.values())
    monthly: dict[str, float] = defaultdict(float)
    for a in apps:
        monthly[month_key(a.created_at)] += revenue[a.id]
    return {
        "reportType": "Financial Summary",
        "generatedAt": datetime.utcnow().isoformat(),
        "summary": {
            "totalRevenue": round(total, 2),
            "totalApplications": len(apps),
            "averageRevenuePerApplication": round(total / len(apps), 2) if apps else 0,
            "activeAgencies": sum(1 for ag in agencies.values() if ag.status == "active"),
        },
        "monthlyRevenue": [{"month": m, "revenue": round(v, 2)} for m, v in sorted(monthly.items())],
        "agencyRevenue": [
            {
                "agencyId": ag.id,
                "agencyName": ag.name,
                "totalRevenue": round(sum(revenue[a.id] for a in apps if a.agency_id == ag.id), 2),
                "applicationCount": sum(1 for a in apps if a.agency_id == ag.id),
                "commissionRate": ag.commission_rate,
            }
            for ag in agencies.values()
        ],
    }


def template_report(s: "Session", template_id: str, *, today: date | None = None) -> dict[str, Any]:
    if template_id not in REPORT_TEMPLATES:
        raise NotFoundError(f"Unknown report template: {template_id}")
    apps = s.query(Application).order_by(Application.created_at.asc()).all()
    agencies = {ag.id: ag for ag in s.query(Agency).order_by(Agency.name.asc()).all()}

    if template_id == "monthly-summary":
        return _monthly_summary(apps, agencies, today or datetime.utcnow().date())
    if template_id == "agency-performance":
        return _agency_performance(apps, agencies)
    if template_id == "college-applications":
        colleges = s.query(College).order_by(College.name.asc()).all()
        return _college_applications(apps, agencies, colleges)
    return _financial_summary(apps, agencies)
