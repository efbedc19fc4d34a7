from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.portal.models import Base

VALID_DOCUMENT_STATUSES = ("pending", "approved", "rejected")


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_application_ref", "application_ref"),
        Index("idx_documents_agency_id", "agency_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(512), nullable=False)
    type: Mapped[str] = mapped_column(String(128), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Either the application code or the numeric application id, as submitted.
    application_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    agency_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_data: Mapped[str | None] = mapped_column(Text, nullable=True)  # base64
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self, *, include_data: bool = False) -> dict:
        out = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "size": self.size,
            "applicationId": self.application_ref,
            "agencyId": self.agency_id,
            "status": self.status,
            "filePath": self.file_path,
            "hasData": bool(self.file_data),
            "uploadedAt": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if include_data:
            out["fileData"] = self.file_data
        return out
