from __future__ import annotations

from flask import Blueprint, jsonify

from app.portal.db import db_session
from app.portal.modules.colleges.service import get_college, list_colleges, list_courses
from app.portal.rbac import require_agency

bp = Blueprint("colleges_agency", __name__)


@bp.get("/api/agency/colleges")
@require_agency
def colleges_list():
    return jsonify({"colleges": list_colleges(db_session(), active_only=True)})


@bp.get("/api/agency/colleges/<int:college_id>/courses")
@require_agency
def courses_list(college_id: int):
    s = db_session()
    college = get_college(s, college_id)
    courses = list_courses(s, college, active_only=True) if college.status == "active" else []
    return jsonify({"courses": [c.to_dict() for c in courses]})
