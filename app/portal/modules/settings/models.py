from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.portal.models import Base


def default_payment_settings() -> dict:
    return {
        "paymentGateway": "stripe",
        "universalPaymentLink": "https://payments.example.com/pay",
        "publicKey": "",
        "secretKey": "",
        "webhookSecret": "",
        "currency": "USD",
        "paymentMethods": [],
        "minimumAmount": 1,
        "maximumAmount": 10000,
        "processingFee": 0,
        "enabled": True,
    }


class PortalSettings(Base):
    """Singleton row (id=1) holding system-wide settings."""

    __tablename__ = "portal_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    system_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Education Management System")
    admin_email: Mapped[str] = mapped_column(String(320), nullable=False)
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_backup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    maintenance_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # [{id, name, position, email, mobile, level}]
    escalation_matrix: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    # {bankName, accountHolderName, accountNumber, ifscCode, branchName, routingNumber, swiftCode, address, instructions}
    banking_details: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=dict)
    payment_settings: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=default_payment_settings)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "systemName": self.system_name,
            "adminEmail": self.admin_email,
            "emailNotifications": self.email_notifications,
            "autoBackup": self.auto_backup,
            "maintenanceMode": self.maintenance_mode,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
