"""Tests for document upload and the payment document flags it drives."""
import base64

from app.portal.db import session_scope
from app.portal.modules.applications.models import Application
from app.portal.modules.payments.models import Payment

PDF_B64 = base64.b64encode(b"%PDF-1.4 passport scan").decode()


def _upload(client, application_ref, **extra):
    payload = {"applicationId": application_ref, "fileData": PDF_B64, "name": "passport.pdf", "type": "application/pdf"}
    payload.update(extra)
    return client.post("/api/agency/documents", json=payload)


def test_upload_flags_payment_document(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()

    r = _upload(client, application["applicationId"])
    assert r.status_code == 201
    doc = r.get_json()["document"]
    assert doc["status"] == "pending"
    assert doc["hasData"] is True
    assert doc["size"] == len(b"%PDF-1.4 passport scan")

    with session_scope(app) as s:
        payment = s.query(Payment).filter(Payment.application_id == application["id"]).one()
        assert payment.documents["passport"]["status"] == "uploaded"
        assert payment.documents["transcript"]["status"] == "missing"


def test_upload_accepts_data_url_and_numeric_id(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    r = _upload(
        client,
        str(application["id"]),
        fileData=f"data:application/pdf;base64,{PDF_B64}",
        name="IELTS result.pdf",
        type="",
    )
    assert r.status_code == 201

    with session_scope(app) as s:
        payment = s.query(Payment).filter(Payment.application_id == application["id"]).one()
        assert payment.documents["ielts"]["status"] == "uploaded"


def test_upload_validation(client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    r = _upload(client, application["applicationId"], fileData="%%% not base64 %%%")
    assert r.status_code == 400

    r = _upload(client, "")
    assert r.status_code == 400


def test_upload_for_unknown_application_still_stored(client, login):
    login("alpha@example.com")
    r = _upload(client, "APP-DOES-NOT-EXIST")
    assert r.status_code == 201
    r = client.get("/api/agency/documents")
    assert len(r.get_json()["documents"]) == 1


def test_requested_documents_round_trip(app, client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()

    with session_scope(app) as s:
        payment_id = s.query(Payment).filter(Payment.application_id == application["id"]).one().id

    login("admin@example.com")
    r = client.put("/api/admin/payments", json={"paymentId": payment_id, "requestDocuments": ["sop", "passport"]})
    assert r.status_code == 200
    docs = r.get_json()["payment"]["documents"]
    assert docs["sop"]["admin_requested"] is True
    assert docs["transcript"]["admin_requested"] is False

    login("alpha@example.com")
    r = client.get("/api/agency/requested-documents")
    rows = r.get_json()["applications"]
    assert rows[0]["pendingDocuments"] == ["sop", "passport"]

    assert _upload(client, application["applicationId"], name="My SOP.pdf").status_code == 201
    with session_scope(app) as s:
        assert s.get(Application, application["id"]).pending_documents == ["passport"]
        payment = s.get(Payment, payment_id)
        assert payment.documents["sop"]["status"] == "uploaded"
        assert payment.documents["sop"]["admin_requested"] is False


def test_other_agency_cannot_touch_document(client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    doc_id = _upload(client, application["applicationId"]).get_json()["document"]["id"]

    login("beta@example.com")
    assert client.get("/api/agency/documents").get_json()["documents"] == []
    assert client.delete(f"/api/agency/documents/{doc_id}").status_code == 404
    assert client.put(f"/api/agency/documents/{doc_id}", json={"type": "other"}).status_code == 404


def test_admin_reviews_and_downloads(client, login, submit_application):
    login("alpha@example.com")
    application = submit_application()
    doc_id = _upload(client, application["applicationId"]).get_json()["document"]["id"]

    login("admin@example.com")
    r = client.put("/api/admin/documents", json={"documentId": doc_id, "status": "approved"})
    assert r.status_code == 200
    assert r.get_json()["document"]["status"] == "approved"

    r = client.put("/api/admin/documents", json={"documentId": doc_id, "status": "lost"})
    assert r.status_code == 400

    r = client.get(f"/api/admin/documents/{doc_id}/download")
    assert r.status_code == 200
    assert r.data == b"%PDF-1.4 passport scan"
    assert r.mimetype == "application/pdf"
