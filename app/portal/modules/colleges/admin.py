from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.portal.db import db_session
from app.portal.modules.colleges.service import (
    create_college,
    create_course,
    delete_college,
    delete_course,
    get_college,
    get_course,
    list_colleges,
    list_courses,
    update_college,
    update_course,
)
from app.portal.rbac import require_admin

bp = Blueprint("colleges_admin", __name__)


# ---------- Colleges ----------
@bp.get("/api/admin/colleges")
@require_admin
def colleges_list():
    return jsonify({"colleges": list_colleges(db_session())})


@bp.post("/api/admin/colleges")
@require_admin
def colleges_create():
    s = db_session()
    college = create_college(s, request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    return jsonify({"college": college.to_dict(include_courses=True)}), 201


@bp.get("/api/admin/colleges/<int:college_id>")
@require_admin
def college_detail(college_id: int):
    college = get_college(db_session(), college_id)
    return jsonify({"college": college.to_dict(include_courses=True)})


@bp.put("/api/admin/colleges/<int:college_id>")
@require_admin
def college_update(college_id: int):
    s = db_session()
    college = update_college(s, get_college(s, college_id), request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    return jsonify({"college": college.to_dict(include_courses=True)})


@bp.delete("/api/admin/colleges/<int:college_id>")
@require_admin
def college_delete(college_id: int):
    s = db_session()
    delete_college(s, get_college(s, college_id), g.current_user)
    s.commit()
    return jsonify({"message": "College deleted successfully"})


# ---------- Courses ----------
@bp.get("/api/admin/colleges/<int:college_id>/courses")
@require_admin
def courses_list(college_id: int):
    s = db_session()
    college = get_college(s, college_id)
    return jsonify({"college": college.to_dict(), "courses": [c.to_dict() for c in list_courses(s, college)]})


@bp.post("/api/admin/colleges/<int:college_id>/courses")
@require_admin
def courses_create(college_id: int):
    s = db_session()
    course = create_course(s, get_college(s, college_id), request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    return jsonify({"course": course.to_dict()}), 201


@bp.get("/api/admin/colleges/<int:college_id>/courses/<int:course_id>")
@require_admin
def course_detail(college_id: int, course_id: int):
    return jsonify({"course": get_course(db_session(), college_id, course_id).to_dict()})


@bp.put("/api/admin/colleges/<int:college_id>/courses/<int:course_id>")
@require_admin
def course_update(college_id: int, course_id: int):
    s = db_session()
    course = update_course(s, get_course(s, college_id, course_id), request.get_json(silent=True) or {}, g.current_user)
    s.commit()
    return jsonify({"course": course.to_dict()})


@bp.delete("/api/admin/colleges/<int:college_id>/courses/<int:course_id>")
@require_admin
def course_delete(college_id: int, course_id: int):
    s = db_session()
    delete_course(s, get_course(s, college_id, course_id), g.current_user)
    s.commit()
    return jsonify({"message": "Course deleted successfully"})
