"""Tests for college and course administration and the agency catalogue."""
from app.portal.db import session_scope
from app.portal.modules.colleges.models import College, Course
from app.portal.modules.colleges.service import seed_sample_catalogue


def _create_college(client, **extra):
    payload = {"name": "Harbour Institute", "location": "Mumbai", "ranking": 1}
    payload.update(extra)
    r = client.post("/api/admin/colleges", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()["college"]


def test_create_college_with_nested_courses(client, login):
    login("admin@example.com")
    college = _create_college(
        client,
        facilities="Library, Hostel",
        courses=[
            {"name": "BBA", "fee": 5000, "courseType": "UG", "streams": ["Finance", "Marketing"]},
            {"name": "B.Com", "fee": "4200.50"},
        ],
    )
    assert college["status"] == "active"
    assert college["facilities"] == ["Library", "Hostel"]
    assert [c["name"] for c in college["courses"]] == ["B.Com", "BBA"]
    bba = next(c for c in college["courses"] if c["name"] == "BBA")
    assert bba["fee"] == 5000.0
    assert bba["currency"] == "INR"
    assert bba["streams"] == ["Finance", "Marketing"]


def test_create_college_validation(client, login):
    login("admin@example.com")
    r = client.post("/api/admin/colleges", json={"location": "Nowhere"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "College name is required"

    r = client.post("/api/admin/colleges", json={"name": "Broken", "courses": ["BBA"]})
    assert r.status_code == 400
    assert r.get_json()["error"] == "courses must be a list of objects"

    r = client.post("/api/admin/colleges", json={"name": "Broken", "courses": [{"name": "BBA", "fee": -1}]})
    assert r.status_code == 400


def test_college_list_orders_by_ranking_then_name(client, login, submit_application):
    login("alpha@example.com")
    submit_application()

    login("admin@example.com")
    _create_college(client, name="Zenith College", ranking=1)
    _create_college(client, name="Aston College", ranking=3)
    _create_college(client, name="Abbey College", ranking=None)

    r = client.get("/api/admin/colleges")
    assert r.status_code == 200
    rows = r.get_json()["colleges"]
    assert [c["name"] for c in rows] == ["Zenith College", "Aston College", "Northfield University", "Abbey College"]
    northfield = rows[2]
    assert northfield["coursesCount"] == 1
    assert northfield["applicationsCount"] == 1


def test_update_and_delete_college_removes_courses(app, client, login):
    login("admin@example.com")
    college = _create_college(client, courses=[{"name": "BBA"}, {"name": "BCA"}])

    r = client.put(f"/api/admin/colleges/{college['id']}", json={"name": "Harbour University", "ranking": 2})
    assert r.status_code == 200
    assert r.get_json()["college"]["name"] == "Harbour University"
    assert r.get_json()["college"]["ranking"] == 2

    r = client.put(f"/api/admin/colleges/{college['id']}", json={"name": "  "})
    assert r.status_code == 400

    r = client.delete(f"/api/admin/colleges/{college['id']}")
    assert r.status_code == 200
    assert client.get(f"/api/admin/colleges/{college['id']}").status_code == 404

    with session_scope(app) as s:
        assert s.get(College, college["id"]) is None
        assert s.query(Course).filter(Course.college_id == college["id"]).count() == 0
        # The seeded catalogue is untouched.
        assert s.query(Course).count() == 1


def test_course_crud_under_college(client, login, ids):
    login("admin@example.com")
    base = f"/api/admin/colleges/{ids['college']}/courses"

    r = client.post(base, json={"name": "MSc Data Science", "fee": 12000, "duration": "2 years"})
    assert r.status_code == 201
    course = r.get_json()["course"]
    assert course["collegeId"] == ids["college"]

    r = client.get(base)
    assert [c["name"] for c in r.get_json()["courses"]] == ["MBA", "MSc Data Science"]

    r = client.put(f"{base}/{course['id']}", json={"fee": 12500, "status": "inactive"})
    assert r.status_code == 200
    assert r.get_json()["course"]["fee"] == 12500.0
    assert r.get_json()["course"]["status"] == "inactive"

    assert client.post(base, json={"fee": 100}).status_code == 400

    r = client.delete(f"{base}/{course['id']}")
    assert r.status_code == 200
    assert client.get(f"{base}/{course['id']}").status_code == 404


def test_course_under_wrong_college_is_404(client, login, ids):
    login("admin@example.com")
    other = _create_college(client)
    url = f"/api/admin/colleges/{other['id']}/courses/{ids['course']}"
    assert client.get(url).status_code == 404
    assert client.put(url, json={"fee": 1}).status_code == 404
    assert client.delete(url).status_code == 404
    assert client.get("/api/admin/colleges/9999/courses").status_code == 404


def test_agency_sees_active_colleges_and_courses_only(client, login, ids):
    login("admin@example.com")
    closed = _create_college(client, name="Closed College", status="inactive", courses=[{"name": "BSc"}])
    client.post(f"/api/admin/colleges/{ids['college']}/courses", json={"name": "Old MBA", "status": "inactive"})

    login("alpha@example.com")
    r = client.get("/api/agency/colleges")
    assert r.status_code == 200
    assert [c["name"] for c in r.get_json()["colleges"]] == ["Northfield University"]

    r = client.get(f"/api/agency/colleges/{ids['college']}/courses")
    assert [c["name"] for c in r.get_json()["courses"]] == ["MBA"]

    r = client.get(f"/api/agency/colleges/{closed['id']}/courses")
    assert r.status_code == 200
    assert r.get_json()["courses"] == []


def test_sample_catalogue_seed_is_idempotent(app):
    with session_scope(app) as s:
        assert seed_sample_catalogue(s) == {"colleges": 3, "courses": 4}
    with session_scope(app) as s:
        assert seed_sample_catalogue(s) == {"colleges": 0, "courses": 0}
        assert s.query(College).count() == 4
        oxford = s.query(College).filter(College.name == "University of Oxford").one()
        assert sorted(c.name for c in oxford.courses) == ["Engineering", "Medicine"]
        assert {c.currency for c in oxford.courses} == {"GBP"}


def test_college_admin_routes_require_admin(client, login):
    assert client.get("/api/admin/colleges").status_code == 401
    login("alpha@example.com")
    assert client.get("/api/admin/colleges").status_code == 401
    assert client.post("/api/admin/colleges", json={"name": "Nope"}).status_code == 401
