from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.portal.models import Base

VALID_PAYMENT_STATUSES = ("pending", "pending_approval", "paid", "verified", "approved", "rejected", "failed")
VALID_LEAD_STATUSES = ("new", "contacted", "interested", "applied", "enrolled", "dropped")
TRACKED_DOCUMENT_TYPES = ("passport", "transcript", "sop", "ielts")
VALID_OFFLINE_TYPES = ("upi", "bank-transfer")
VALID_OFFLINE_STATUSES = ("pending", "approved", "rejected")


def default_document_flags() -> dict:
    return {t: {"status": "missing", "uploaded_at": None, "admin_requested": False} for t in TRACKED_DOCUMENT_TYPES}


class Payment(Base):
    """
    One payment/commission record per application.
    The unique constraint on application_id keeps the sync jobs idempotent.
    """

    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payments_agency_id", "agency_id"),
        Index("idx_payments_payment_status", "payment_status"),
        Index("idx_payments_lead_status", "lead_status"),
        Index("idx_payments_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Denormalized application snapshot
    student_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    agency_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    agency_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    college_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    college_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    course_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    application_fee: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tuition_fee: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    payment_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payment_link: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # {filename, size, mime_type, data (base64), uploaded_at, uploaded_by}
    payment_receipt: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payment_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    lead_status: Mapped[str] = mapped_column(String(32), nullable=False, default="new")
    # {passport|transcript|sop|ielts: {status, uploaded_at, admin_requested}}
    documents: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=default_document_flags)

    commission_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    commission_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    commission_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    admin_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    verified_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    agency_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    last_contact: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True, default=datetime.utcnow)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self, *, include_receipt_data: bool = False) -> dict:
        receipt = dict(self.payment_receipt) if self.payment_receipt else None
        if receipt and not include_receipt_data:
            receipt.pop("data", None)
        return {
            "id": self.id,
            "applicationId": self.application_id,
            "studentName": self.student_name,
            "email": self.email,
            "phone": self.phone,
            "agencyId": self.agency_id,
            "agencyName": self.agency_name,
            "collegeId": self.college_id,
            "collegeName": self.college_name,
            "courseName": self.course_name,
            "applicationFee": self.application_fee,
            "tuitionFee": self.tuition_fee,
            "paymentAmount": self.payment_amount,
            "paymentDate": self.payment_date.isoformat() if self.payment_date else None,
            "paymentMethod": self.payment_method,
            "transactionId": self.transaction_id,
            "paymentLink": self.payment_link,
            "paymentReceipt": receipt,
            "paymentStatus": self.payment_status,
            "leadStatus": self.lead_status,
            "documents": self.documents or default_document_flags(),
            "commissionRate": self.commission_rate,
            "commissionAmount": self.commission_amount,
            "commissionPaid": self.commission_paid,
            "adminNotes": self.admin_notes,
            "verifiedAt": self.verified_at.isoformat() if self.verified_at else None,
            "verifiedBy": self.verified_by,
            "agencyNotes": self.agency_notes,
            "notes": self.notes,
            "lastContact": self.last_contact.isoformat() if self.last_contact else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class OfflinePayment(Base):
    __tablename__ = "offline_payments"
    __table_args__ = (
        Index("idx_offline_payments_agency_id", "agency_id"),
        Index("idx_offline_payments_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    agency_id: Mapped[int] = mapped_column(Integer, nullable=False)
    beneficiary: Mapped[str] = mapped_column(String(255), nullable=False)
    payment_type: Mapped[str] = mapped_column(String(32), nullable=False)  # upi | bank-transfer
    account_holder_name: Mapped[str] = mapped_column(String(255), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    receipt_file: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agencyId": self.agency_id,
            "beneficiary": self.beneficiary,
            "paymentType": self.payment_type,
            "accountHolderName": self.account_holder_name,
            "transactionId": self.transaction_id,
            "amount": self.amount,
            "txnDate": self.txn_date.isoformat() if self.txn_date else None,
            "status": self.status,
            "receiptFile": self.receipt_file,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
