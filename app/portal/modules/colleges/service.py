from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.portal.audit import record_event
from app.portal.errors import NotFoundError, ValidationError
from app.portal.modules.colleges.models import College, Course
from app.portal.utils import clean, parse_float, parse_int, parse_list

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.portal.models import User

_COLLEGE_FIELDS = {
    "name": ("name", clean),
    "location": ("location", clean),
    "type": ("type", clean),
    "ranking": ("ranking", parse_int),
    "description": ("description", clean),
    "email": ("email", clean),
    "phone": ("phone", clean),
    "website": ("website", clean),
    "facilities": ("facilities", parse_list),
    "establishedYear": ("established_year", parse_int),
    "status": ("status", clean),
}

_COURSE_FIELDS = {
    "name": ("name", clean),
    "level": ("level", clean),
    "duration": ("duration", clean),
    "fee": ("fee", lambda v: parse_float(v, 0.0)),
    "currency": ("currency", clean),
    "requirements": ("requirements", clean),
    "sessions": ("sessions", parse_list),
    "courseType": ("course_type", clean),
    "streams": ("streams", parse_list),
    "status": ("status", clean),
}


def _apply(obj: Any, payload: dict, fields: dict) -> dict[str, dict]:
    changes: dict[str, dict] = {}
    for key, (attr, conv) in fields.items():
        if key not in payload:
            continue
        new = conv(payload.get(key))
        old = getattr(obj, attr)
        if new != old:
            changes[attr] = {"old": old, "new": new}
            setattr(obj, attr, new)
    return changes


def get_college(s: "Session", college_id: int) -> College:
    college = s.get(College, college_id)
    if not college:
        raise NotFoundError("College not found")
    return college


def get_course(s: "Session", college_id: int, course_id: int) -> Course:
    course = s.get(Course, course_id)
    if not course or course.college_id != college_id:
        raise NotFoundError("Course not found")
    return course


def list_colleges(s: "Session", *, active_only: bool = False) -> list[dict]:
    """Colleges ordered by ranking (unranked last) then name, with course/application counts."""
    from app.portal.modules.applications.models import Application

    q = s.query(College)
    if active_only:
        q = q.filter(College.status == "active")
    colleges = q.order_by(College.ranking.is_(None), College.ranking.asc(), College.name.asc()).all()
    app_counts = dict(
        s.query(Application.college_id, func.count(Application.id)).group_by(Application.college_id).all()
    )
    out = []
    for c in colleges:
        row = c.to_dict()
        row["coursesCount"] = len(c.courses)
        row["applicationsCount"] = int(app_counts.get(c.id, 0))
        out.append(row)
    return out


def _nested_courses(raw: Any) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(c, dict) for c in raw):
        raise ValidationError("courses must be a list of objects")
    return raw


def create_college(s: "Session", payload: dict, actor: "User | None") -> College:
    if not clean(payload.get("name")):
        raise ValidationError("College name is required")
    courses = _nested_courses(payload.get("courses"))
    now = datetime.utcnow()
    college = College(status="active", facilities=[], created_at=now, updated_at=now)
    _apply(college, payload, _COLLEGE_FIELDS)
    college.status = college.status or "active"
    s.add(college)
    s.flush()

    for course_payload in courses:
        create_course(s, college, course_payload, actor)

    record_event(
        s,
        actor=actor,
        action="college.create",
        entity_type="College",
        entity_id=str(college.id),
        metadata={"name": college.name, "courses": len(courses)},
    )
    return college


def update_college(s: "Session", college: College, payload: dict, actor: "User") -> College:
    if "name" in payload and not clean(payload.get("name")):
        raise ValidationError("College name is required")
    changes = _apply(college, payload, _COLLEGE_FIELDS)
    if changes:
        college.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=actor,
            action="college.update",
            entity_type="College",
            entity_id=str(college.id),
            metadata={"changes": changes},
        )
    return college


def delete_college(s: "Session", college: College, actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        action="college.delete",
        entity_type="College",
        entity_id=str(college.id),
        metadata={"name": college.name, "courses": len(college.courses)},
    )
    s.delete(college)  # courses go with it (delete-orphan)


def list_courses(s: "Session", college: College, *, active_only: bool = False) -> list[Course]:
    q = s.query(Course).filter(Course.college_id == college.id)
    if active_only:
        q = q.filter(Course.status == "active")
    return q.order_by(Course.name.asc()).all()


def create_course(s: "Session", college: College, payload: dict, actor: "User | None") -> Course:
    if not clean(payload.get("name")):
        raise ValidationError("Course name is required")
    now = datetime.utcnow()
    course = Course(college_id=college.id, fee=0.0, currency="INR", status="active", created_at=now, updated_at=now)
    _apply(course, payload, _COURSE_FIELDS)
    course.currency = course.currency or "INR"
    course.status = course.status or "active"
    if (course.fee or 0) < 0:
        raise ValidationError("Course fee cannot be negative")
    s.add(course)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="course.create",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"college_id": college.id, "name": course.name},
    )
    return course


def update_course(s: "Session", course: Course, payload: dict, actor: "User") -> Course:
    if "name" in payload and not clean(payload.get("name")):
        raise ValidationError("Course name is required")
    changes = _apply(course, payload, _COURSE_FIELDS)
    if (course.fee or 0) < 0:
        raise ValidationError("Course fee cannot be negative")
    if changes:
        course.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=actor,
            action="course.update",
            entity_type="Course",
            entity_id=str(course.id),
            metadata={"changes": changes},
        )
    return course


def delete_course(s: "Session", course: Course, actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        action="course.delete",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"college_id": course.college_id, "name": course.name},
    )
    s.delete(course)


SAMPLE_CATALOGUE: list[dict] = [
    {
        "name": "Stanford University",
        "location": "California, USA",
        "type": "University",
        "ranking": 1,
        "description": "Leading research university",
        "email": "admissions@stanford.edu",
        "phone": "+1-650-723-2300",
        "facilities": ["Library", "Labs", "Sports"],
        "establishedYear": 1885,
        "courses": [
            {
                "name": "Computer Science",
                "level": "Bachelor",
                "duration": "4 years",
                "fee": 25000,
                "currency": "USD",
                "requirements": "High school diploma",
                "courseType": "Undergraduate",
                "streams": ["Software Engineering", "Data Science", "AI/ML"],
                "sessions": ["Fall 2024", "Spring 2025"],
            },
            {
                "name": "Business Administration",
                "level": "Master",
                "duration": "2 years",
                "fee": 45000,
                "currency": "USD",
                "requirements": "Bachelor degree",
                "courseType": "Postgraduate",
                "streams": ["Finance", "Marketing", "Operations"],
                "sessions": ["Fall 2024", "Spring 2025"],
            },
        ],
    },
    {
        "name": "University of Oxford",
        "location": "Oxford, UK",
        "type": "University",
        "ranking": 2,
        "description": "Historic university",
        "email": "admissions@ox.ac.uk",
        "phone": "+44-1865-270000",
        "facilities": ["Library", "Museums", "Colleges"],
        "establishedYear": 1096,
        "courses": [
            {
                "name": "Engineering",
                "level": "Bachelor",
                "duration": "4 years",
                "fee": 30000,
                "currency": "GBP",
                "requirements": "A-levels or equivalent",
                "courseType": "Undergraduate",
                "streams": ["Mechanical", "Electrical", "Civil"],
                "sessions": ["September 2024", "January 2025"],
            },
            {
                "name": "Medicine",
                "level": "Bachelor",
                "duration": "6 years",
                "fee": 50000,
                "currency": "GBP",
                "requirements": "A-levels in Science",
                "courseType": "Undergraduate",
                "streams": ["General Medicine", "Surgery"],
                "sessions": ["September 2024"],
            },
        ],
    },
    {
        "name": "MIT",
        "location": "Massachusetts, USA",
        "type": "Institute",
        "ranking": 3,
        "description": "Technology focused institute",
        "email": "admissions@mit.edu",
        "phone": "+1-617-253-1000",
        "facilities": ["Labs", "Research Centers"],
        "establishedYear": 1861,
        "courses": [],
    },
]


def seed_sample_catalogue(s: "Session", actor: "User | None" = None) -> dict[str, int]:
    """Create the demo colleges and courses; colleges already present by name are skipped."""
    existing = {name.lower() for (name,) in s.query(College.name).all()}
    created = {"colleges": 0, "courses": 0}
    for entry in SAMPLE_CATALOGUE:
        if entry["name"].lower() in existing:
            continue
        create_college(s, entry, actor)
        created["colleges"] += 1
        created["courses"] += len(entry["courses"])
    return created
