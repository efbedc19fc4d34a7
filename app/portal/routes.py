from flask import Blueprint, g, redirect, render_template, url_for

from app.portal.audit import recent_events
from app.portal.db import db_session
from app.portal.modules.applications.service import admin_dashboard_stats, agency_dashboard_stats
from app.portal.rbac import dashboard_endpoint, require_admin, require_agency

bp = Blueprint("pages", __name__)

# (endpoint suffix, label) per sidebar; each list page is a shell that loads from the JSON API
ADMIN_SECTIONS = [
    ("applications", "Applications"),
    ("agencies", "Agencies"),
    ("colleges", "Colleges"),
    ("payments", "Payments"),
    ("users", "Users"),
    ("reports", "Reports"),
    ("settings", "Settings"),
]
AGENCY_SECTIONS = [
    ("applications", "Applications"),
    ("documents", "Documents"),
    ("payments", "Payments"),
    ("settings", "Settings"),
]


@bp.get("/")
def index():
    u = getattr(g, "current_user", None)
    if not u:
        return redirect(url_for("auth.login_get"))
    return redirect(url_for(dashboard_endpoint(u)))


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Fast liveness probe. No DB access."""
    return "ok", 200


@bp.get("/admin/")
@require_admin
def admin_index():
    s = db_session()
    return render_template(
        "admin/index.html",
        stats=admin_dashboard_stats(s),
        activities=recent_events(s, limit=10),
        sections=ADMIN_SECTIONS,
    )


@bp.get("/admin/<section>")
@require_admin
def admin_section(section: str):
    labels = dict(ADMIN_SECTIONS)
    if section not in labels:
        return render_template("errors/404.html"), 404
    return render_template(
        "section.html",
        area="admin",
        section=section,
        title=labels[section],
        sections=ADMIN_SECTIONS,
        api_url=_admin_api(section),
    )


@bp.get("/agency/")
@require_agency
def agency_index():
    u = g.current_user
    s = db_session()
    stats = agency_dashboard_stats(s, u.agency_id) if u.agency_id is not None else None
    activities = recent_events(s, agency_id=u.agency_id, limit=10) if u.agency_id is not None else []
    return render_template("agency/index.html", stats=stats, activities=activities, sections=AGENCY_SECTIONS)


@bp.get("/agency/<section>")
@require_agency
def agency_section(section: str):
    labels = dict(AGENCY_SECTIONS)
    if section not in labels:
        return render_template("errors/404.html"), 404
    return render_template(
        "section.html",
        area="agency",
        section=section,
        title=labels[section],
        sections=AGENCY_SECTIONS,
        api_url=_agency_api(section),
    )


def _admin_api(section: str) -> str | None:
    return {
        "applications": "/api/admin/applications",
        "agencies": "/api/admin/agencies",
        "colleges": "/api/admin/colleges",
        "payments": "/api/admin/payments",
        "users": "/api/admin/users",
        "settings": "/api/admin/settings",
    }.get(section)


def _agency_api(section: str) -> str | None:
    return {
        "applications": "/api/agency/applications",
        "documents": "/api/agency/documents",
        "payments": "/api/agency/payments",
        "settings": "/api/agency/settings",
    }.get(section)
