"""
PDF rendering with reportlab's canvas API.

``admission_form_pdf`` lays out an application as a multi-page admission form;
``payment_receipt_pdf`` renders a one-page A5 receipt for a payment.
"""
from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Any

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, A5
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

BRAND = colors.HexColor("#1e3a8a")
MUTED = colors.HexColor("#64748b")
LIGHT_BG = colors.HexColor("#eef2ff")
SOFT_BORDER = colors.HexColor("#e2e8f0")


def _fmt_date(value: Any, fmt: str = "%Y-%m-%d") -> str:
    if value is None or value == "":
        return "N/A"
    if hasattr(value, "strftime"):
        return value.strftime(fmt)
    return str(value)


def _wrap(text: str, max_chars: int) -> list[str]:
    words = (text or "").split()
    lines: list[str] = []
    line = ""
    for w in words:
        if len(line) + len(w) + 1 > max_chars and line:
            lines.append(line)
            line = w
        else:
            line = f"{line} {w}".strip()
    if line:
        lines.append(line)
    return lines or [""]


class _FormWriter:
    """Top-down writer that starts a new page when it runs out of room."""

    def __init__(self, c: canvas.Canvas, width: float, height: float, title: str):
        self.c = c
        self.width = width
        self.height = height
        self.x = 18 * mm
        self.title = title
        self.page = 0
        self._new_page()

    def _new_page(self) -> None:
        if self.page:
            self.c.showPage()
        self.page += 1
        header_h = 22 * mm
        self.c.setFillColor(BRAND)
        self.c.rect(0, self.height - header_h, self.width, header_h, fill=1, stroke=0)
        self.c.setFillColor(colors.white)
        self.c.setFont("Helvetica-Bold", 15)
        self.c.drawString(self.x, self.height - 13 * mm, self.title)
        self.c.setFont("Helvetica", 8)
        self.c.drawRightString(self.width - self.x, self.height - 13 * mm, f"Page {self.page}")
        self.y = self.height - header_h - 10 * mm

    def ensure(self, needed: float) -> None:
        if self.y - needed < 18 * mm:
            self._new_page()

    def section(self, label: str) -> None:
        self.ensure(14 * mm)
        self.y -= 2 * mm
        self.c.setFillColor(LIGHT_BG)
        self.c.rect(self.x - 2 * mm, self.y - 2 * mm, self.width - 2 * self.x + 4 * mm, 7 * mm, fill=1, stroke=0)
        self.c.setFillColor(BRAND)
        self.c.setFont("Helvetica-Bold", 10.5)
        self.c.drawString(self.x, self.y, label)
        self.y -= 9 * mm

    def kv(self, label: str, value: Any) -> None:
        text = "N/A" if value in (None, "") else str(value)
        lines = _wrap(text, 70)
        self.ensure(6 * mm * len(lines))
        self.c.setFont("Helvetica", 9)
        self.c.setFillColor(MUTED)
        self.c.drawString(self.x, self.y, label)
        self.c.setFillColor(colors.black)
        self.c.setFont("Helvetica-Bold", 9.5)
        for line in lines:
            self.c.drawString(self.x + 48 * mm, self.y, line)
            self.y -= 5.5 * mm

    def row(self, cells: list[str], widths: list[float], *, bold: bool = False) -> None:
        self.ensure(6 * mm)
        self.c.setFont("Helvetica-Bold" if bold else "Helvetica", 8.5)
        self.c.setFillColor(colors.black)
        x = self.x
        for cell, w in zip(cells, widths):
            self.c.drawString(x, self.y, (cell or "")[: int(w / (1.8 * mm))])
            x += w
        self.y -= 5.5 * mm
        self.c.setStrokeColor(SOFT_BORDER)
        self.c.line(self.x, self.y + 3.5 * mm, self.width - self.x, self.y + 3.5 * mm)


def admission_form_pdf(application: dict, documents: list[dict]) -> bytes:
    """``application`` is an Application.to_dict(); ``documents`` are Document.to_dict() rows."""
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"Admission Form {application.get('applicationId') or ''}")
    width, height = A4
    w = _FormWriter(c, width, height, "Student Admission Form")

    details = application.get("studentDetails") or {}

    w.section("Application")
    w.kv("Application ID", application.get("applicationId"))
    w.kv("Status", (application.get("status") or "").title())
    w.kv("Submitted", _fmt_date(application.get("createdAt"))[:10])
    w.kv("Agency", application.get("agencyName"))

    w.section("Programme")
    w.kv("College", application.get("collegeName"))
    w.kv("Course", application.get("courseName"))
    w.kv("Course type", application.get("courseType"))
    w.kv("Stream", application.get("stream"))
    w.kv("Fees", f"{float(application.get('fees') or 0):,.2f}")
    w.kv("ABC ID", application.get("abcId"))
    w.kv("DEB ID", application.get("debId"))

    w.section("Student")
    w.kv("Name", application.get("studentName"))
    w.kv("Email", application.get("email"))
    w.kv("Phone", application.get("phone"))
    w.kv("Date of birth", details.get("dateOfBirth"))
    w.kv("Nationality", details.get("nationality"))
    w.kv("Father's name", details.get("fatherName"))
    w.kv("Mother's name", details.get("motherName"))
    w.kv("Address", details.get("address"))
    for key, label in (
        ("previousEducation", "Previous education"),
        ("gpa", "GPA"),
        ("englishProficiency", "English proficiency"),
        ("workExperience", "Work experience"),
        ("personalStatement", "Personal statement"),
    ):
        if details.get(key):
            w.kv(label, details.get(key))

    records = application.get("academicRecords") or []
    w.section("Academic Records")
    if records:
        widths = [30 * mm, 45 * mm, 20 * mm, 35 * mm, 25 * mm]
        w.row(["Level", "Board / University", "Year", "Marks", "Percentage"], widths, bold=True)
        for r in records:
            w.row(
                [
                    str(r.get("level") or ""),
                    str(r.get("board") or ""),
                    str(r.get("year") or ""),
                    str(r.get("obtainedMarks") or ""),
                    str(r.get("percentage") or ""),
                ],
                widths,
            )
    else:
        w.kv("Records", "None provided")

    w.section("Documents")
    if documents:
        widths = [80 * mm, 40 * mm, 30 * mm]
        w.row(["Name", "Type", "Status"], widths, bold=True)
        for d in documents:
            w.row([str(d.get("name") or ""), str(d.get("type") or ""), str(d.get("status") or "")], widths)
    else:
        w.kv("Documents", "None uploaded")

    w.ensure(20 * mm)
    w.y -= 10 * mm
    c.setFont("Helvetica", 8)
    c.setFillColor(MUTED)
    c.drawString(w.x, w.y, f"Generated {datetime.utcnow().strftime('%Y-%m-%d %H:%M')} UTC")

    c.showPage()
    c.save()
    pdf_bytes = buf.getvalue()
    buf.close()
    return pdf_bytes


def payment_receipt_pdf(payment: dict, *, system_name: str = "Education Management System", currency: str = "") -> bytes:
    """``payment`` is a Payment.to_dict()."""
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A5)
    width, height = A5
    x_margin = 14 * mm
    content_gap = 6 * mm

    header_h = 24 * mm
    c.setFillColor(BRAND)
    c.rect(0, height - header_h, width, header_h, fill=1, stroke=0)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 13)
    c.drawString(x_margin, height - 11 * mm, system_name)
    c.setFont("Helvetica", 9)
    c.setFillColor(colors.whitesmoke)
    c.drawString(x_margin, height - 16 * mm, "Payment Receipt")

    status = (payment.get("paymentStatus") or "").replace("_", " ").upper()
    badge_w, badge_h = 34 * mm, 8 * mm
    badge_x = width - x_margin - badge_w
    badge_y = height - 12 * mm - (badge_h / 2)
    c.setFillColor(colors.white)
    c.roundRect(badge_x, badge_y, badge_w, badge_h, 2 * mm, fill=1, stroke=0)
    c.setFillColor(BRAND)
    c.setFont("Helvetica-Bold", 8)
    c.drawCentredString(badge_x + badge_w / 2, badge_y + 2.6 * mm, status or "PENDING")

    y = height - header_h - 10 * mm

    amount = float(payment.get("paymentAmount") or payment.get("applicationFee") or 0)
    card_h = 14 * mm
    card_y = y - card_h
    c.setFillColor(LIGHT_BG)
    c.roundRect(x_margin, card_y, width - 2 * x_margin, card_h, 3 * mm, fill=1, stroke=0)
    c.setFont("Helvetica", 9)
    c.setFillColor(MUTED)
    c.drawCentredString(width / 2, card_y + card_h - 5 * mm, "Amount")
    c.setFillColor(colors.HexColor("#0f172a"))
    c.setFont("Helvetica-Bold", 16)
    c.drawCentredString(width / 2, card_y + 4.8 * mm, f"{currency} {amount:,.2f}".strip())
    y = card_y - content_gap

    c.setStrokeColor(colors.lightgrey)
    c.setDash(1, 2)
    c.line(x_margin, y, width - x_margin, y)
    c.setDash()
    y -= content_gap

    def draw_kv(label: str, value: Any) -> None:
        nonlocal y
        c.setFont("Helvetica", 9)
        c.setFillColor(MUTED)
        c.drawString(x_margin, y, label)
        c.setFillColor(colors.black)
        c.setFont("Helvetica-Bold", 10)
        c.drawRightString(width - x_margin, y, "N/A" if value in (None, "") else str(value))
        y -= 6.5 * mm

    draw_kv("Receipt No.", f"#{payment.get('id')}")
    draw_kv("Date", _fmt_date(payment.get("paymentDate") or payment.get("updatedAt"))[:16].replace("T", " "))
    draw_kv("Student", payment.get("studentName"))
    draw_kv("Agency", payment.get("agencyName"))
    draw_kv("College", payment.get("collegeName"))
    draw_kv("Course", payment.get("courseName"))
    draw_kv("Method", payment.get("paymentMethod"))
    draw_kv("Transaction", payment.get("transactionId"))
    draw_kv("Commission", f"{float(payment.get('commissionAmount') or 0):,.2f} ({payment.get('commissionRate') or 0}%)")

    c.setFillColor(MUTED)
    c.setFont("Helvetica", 8)
    c.drawCentredString(width / 2, max(y, 14 * mm), "This receipt was generated electronically.")

    c.showPage()
    c.save()
    pdf_bytes = buf.getvalue()
    buf.close()
    return pdf_bytes
