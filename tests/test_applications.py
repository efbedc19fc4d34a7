import base64

from app.portal.db import session_scope
from app.portal.modules.documents.models import Document
from app.portal.modules.payments.models import Payment


def test_submit_creates_application_and_payment(app, client, login, submit_application, ids):
    login("alpha@example.com")
    application = submit_application()
    assert application["status"] == "pending"
    assert application["fees"] == 10000.0
    assert application["agencyId"] == ids["alpha_agency"]
    assert application["collegeName"] == "Northfield University"
    assert application["studentDetails"]["dateOfBirth"] == "2001-04-02"
    assert application["applicationId"]

    with session_scope(app) as s:
        payment = s.query(Payment).filter(Payment.application_id == application["id"]).one()
        assert payment.commission_rate == 20.0
        assert payment.commission_amount == 2000.0
        assert payment.payment_status == "pending"
        assert payment.lead_status == "applied"
        assert payment.documents["passport"]["status"] == "missing"


def test_submit_validation(client, login, ids):
    login("alpha@example.com")
    r = client.post("/api/agency/applications", json={"studentName": "No Contact"})
    assert r.status_code == 400

    r = client.post(
        "/api/agency/applications",
        json={"studentName": "A", "email": "a@example.com", "phone": "1", "collegeId": ids["college"], "courseId": 999},
    )
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid course selection"


def test_agency_sees_only_its_own_applications(client, login, submit_application):
    login("alpha@example.com")
    mine = submit_application()

    login("beta@example.com")
    r = client.get("/api/agency/applications")
    assert r.get_json()["applications"] == []

    r = client.put("/api/agency/applications", json={"id": mine["id"], "phone": "0000"})
    assert r.status_code == 403

    r = client.get(f"/api/generate-pdf?applicationId={mine['id']}")
    assert r.status_code == 403


def test_agency_edits_student_fields(client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    r = client.put(
        "/api/agency/applications",
        json={"id": application["applicationId"], "phone": "8888888888", "nationality": "Indian"},
    )
    assert r.status_code == 200
    updated = r.get_json()["application"]
    assert updated["phone"] == "8888888888"
    assert updated["studentDetails"]["nationality"] == "Indian"
    assert updated["status"] == "pending"


def test_status_change_cascades_to_documents(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    for name in ("passport.pdf", "marks.pdf"):
        r = client.post(
            "/api/agency/documents",
            json={
                "applicationId": application["applicationId"],
                "fileData": base64.b64encode(b"%PDF-1.4 test").decode(),
                "name": name,
                "type": "application/pdf",
            },
        )
        assert r.status_code == 201

    login("admin@example.com")
    r = client.patch("/api/admin/applications", json={"applicationId": application["id"], "status": "approved"})
    assert r.status_code == 200
    assert r.get_json()["documentsUpdated"] == 2

    with session_scope(app) as s:
        statuses = {d.status for d in s.query(Document).all()}
        assert statuses == {"approved"}

    r = client.patch("/api/admin/applications", json={"applicationId": application["id"], "status": "done"})
    assert r.status_code == 400


def test_admin_list_filters_and_detail(client, login, submit_application):
    login("alpha@example.com")
    submit_application(studentName="Ravi Kumar", email="ravi@example.com")
    submit_application(studentName="Meera Iyer", email="meera@example.com")

    login("admin@example.com")
    r = client.get("/api/admin/applications?search=ravi")
    rows = r.get_json()["applications"]
    assert [a["studentName"] for a in rows] == ["Ravi Kumar"]
    assert rows[0]["documents"] == []

    r = client.get("/api/admin/applications", query_string={"agency": "Beta Agency"})
    assert r.get_json()["applications"] == []

    r = client.get("/api/admin/applications/stats")
    assert r.get_json()["total"] == 2
    assert r.get_json()["pending"] == 2


def test_admin_fee_change_and_delete(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()

    login("admin@example.com")
    r = client.put(f"/api/admin/applications/{application['id']}", json={"fees": 5000})
    assert r.status_code == 200
    assert r.get_json()["application"]["fees"] == 5000.0

    r = client.delete(f"/api/admin/applications/{application['id']}")
    assert r.status_code == 200
    assert client.get(f"/api/admin/applications/{application['id']}").status_code == 404


def test_generate_pdf(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()

    r = client.post("/api/generate-pdf", json={"applicationId": application["applicationId"]})
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.data.startswith(b"%PDF")
    assert "inline" in r.headers["Content-Disposition"]

    r = client.post("/api/generate-pdf", json={})
    assert r.status_code == 400

    login("admin@example.com")
    r = client.get(f"/api/generate-pdf?applicationId={application['id']}")
    assert r.status_code == 200

    r = client.get(f"/api/admin/applications/{application['id']}")
    assert r.get_json()["application"]["pdfGenerated"] is True


def test_agency_dashboard_stats(client, login, submit_application):
    login("alpha@example.com")
    submit_application()
    r = client.get("/api/agency/stats")
    body = r.get_json()
    assert body["totalApplications"] == 1
    assert body["pendingApplications"] == 1
