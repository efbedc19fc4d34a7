from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.portal.models import Base

VALID_APPLICATION_STATUSES = ("pending", "approved", "rejected", "processing")


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        Index("idx_applications_agency_id", "agency_id"),
        Index("idx_applications_status", "status"),
        Index("idx_applications_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Applicant-facing code, APP-<timestamp>-<RANDOM6>
    application_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str] = mapped_column(String(64), nullable=False)

    # Denormalized references (names are snapshots taken at creation time)
    agency_id: Mapped[int] = mapped_column(Integer, nullable=False)
    agency_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    college_id: Mapped[int] = mapped_column(Integer, nullable=False)
    college_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    course_id: Mapped[int] = mapped_column(Integer, nullable=False)
    course_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    course_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    stream: Mapped[str | None] = mapped_column(String(128), nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    fees: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    pending_documents: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    abc_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    deb_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # [{level, board, year, obtainedMarks, percentage, marksheetUrl}]
    academic_records: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    # {dateOfBirth, nationality, address, fatherName, motherName, ...}
    student_details: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=dict)
    pdf_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "applicationId": self.application_code,
            "studentName": self.student_name,
            "email": self.email,
            "phone": self.phone,
            "agencyId": self.agency_id,
            "agencyName": self.agency_name,
            "collegeId": self.college_id,
            "collegeName": self.college_name,
            "courseId": self.course_id,
            "courseName": self.course_name,
            "courseType": self.course_type,
            "stream": self.stream,
            "status": self.status,
            "fees": self.fees,
            "pendingDocuments": list(self.pending_documents or []),
            "abcId": self.abc_id,
            "debId": self.deb_id,
            "academicRecords": list(self.academic_records or []),
            "studentDetails": dict(self.student_details or {}),
            "pdfGenerated": self.pdf_generated,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
