import csv
import io
import json

from openpyxl import load_workbook

from app.portal.modules.reports.service import apply_filters, render_export


def _seed_applications(login, submit_application):
    login("alpha@example.com")
    submit_application(studentName="Ravi Kumar", email="ravi@example.com")
    submit_application(studentName="Meera Iyer", email="meera@example.com", fees=5000)
    login("beta@example.com")
    submit_application(studentName="John Mathew", email="john@example.com")
    login("admin@example.com")


def test_export_csv_with_filters(client, login, submit_application):
    _seed_applications(login, submit_application)
    r = client.post(
        "/api/admin/export",
        json={
            "dataType": "applications",
            "format": "csv",
            "filters": {"agency": "alpha"},
            "includeFields": ["studentName", "agencyName", "fees"],
        },
    )
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "applications_export.csv" in r.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(r.data.decode())))
    assert rows[0] == ["studentName", "agencyName", "fees"]
    assert sorted(row[0] for row in rows[1:]) == ["Meera Iyer", "Ravi Kumar"]


def test_export_json_and_empty_results(client, login, submit_application):
    _seed_applications(login, submit_application)
    r = client.post("/api/admin/export", json={"dataType": "users", "format": "json", "filters": {"status": "active"}})
    users = json.loads(r.data)
    assert {u["email"] for u in users} == {"admin@example.com", "alpha@example.com", "beta@example.com"}
    assert all("password_hash" not in u for u in users)

    r = client.post(
        "/api/admin/export",
        json={"dataType": "applications", "format": "json", "dateRange": {"from": "2001-01-01", "to": "2001-12-31"}},
    )
    assert json.loads(r.data) == []

    r = client.post("/api/admin/export", json={"dataType": "payments", "format": "csv", "filters": {"status": "paid"}})
    assert r.data == b""


def test_export_excel_is_real_workbook(client, login, submit_application):
    _seed_applications(login, submit_application)
    r = client.post("/api/admin/export", json={"dataType": "payments", "format": "excel"})
    assert r.status_code == 200
    assert r.data[:2] == b"PK"
    assert r.headers["Content-Disposition"].endswith("payments_export.xlsx")

    ws = load_workbook(io.BytesIO(r.data)).active
    assert ws.title == "Export"
    header = [c.value for c in ws[1]]
    assert "commissionAmount" in header
    assert ws.max_row == 4


def test_export_rejects_unknown_type_and_format(client, login):
    login("admin@example.com")
    assert client.post("/api/admin/export", json={"dataType": "secrets", "format": "csv"}).status_code == 400
    assert client.post("/api/admin/export", json={"dataType": "users", "format": "pdf"}).status_code == 400


def test_html_entity_report(client, login, submit_application):
    _seed_applications(login, submit_application)
    r = client.get("/api/admin/reports/applications")
    assert r.status_code == 200
    assert r.mimetype == "text/html"
    assert "applications-report-" in r.headers["Content-Disposition"]
    assert b"Meera Iyer" in r.data
    assert b"Student Name" in r.data

    assert client.get("/api/admin/reports/widgets").status_code == 404


def test_template_reports(client, login, submit_application):
    _seed_applications(login, submit_application)

    r = client.post("/api/admin/reports/financial-summary", json={})
    body = r.get_json()
    # 20% of 10000 + 20% of 5000 + 12.5% of 10000
    assert body["summary"]["totalRevenue"] == 4250.0
    assert body["summary"]["totalApplications"] == 3

    r = client.post("/api/admin/reports/agency-performance", json={})
    alpha = next(a for a in r.get_json()["agencies"] if a["name"] == "Alpha Agency")
    assert alpha["metrics"]["totalApplications"] == 2
    assert alpha["metrics"]["averageApplicationValue"] == 7500.0

    r = client.post("/api/admin/reports/college-applications", json={})
    college = r.get_json()["colleges"][0]
    assert college["applicationStats"]["agencyBreakdown"] == {"Alpha Agency": 2, "Beta Agency": 1}
    assert college["courses"][0]["applicationCount"] == 3

    r = client.post("/api/admin/reports/monthly-summary", json={})
    assert r.get_json()["summary"]["totalApplications"] == 3

    assert client.post("/api/admin/reports/yearly-summary", json={}).status_code == 404


def test_filters_match_payment_status_and_agency_name():
    rows = [
        {"paymentStatus": "pending_approval", "agencyName": "Alpha Agency", "createdAt": "2026-03-01T10:00:00"},
        {"paymentStatus": "paid", "agencyName": "Beta Agency", "createdAt": "2026-03-31T23:59:00"},
    ]
    assert len(apply_filters(rows, "payments", {"status": "PENDING"}, None)) == 1
    assert len(apply_filters(rows, "payments", {"agency": "beta"}, None)) == 1
    assert len(apply_filters(rows, "payments", None, {"from": "2026-03-01", "to": "2026-03-31"})) == 2


def test_render_export_empty():
    assert render_export([], "json") == b"[]"
    assert render_export([], "csv") == b""
