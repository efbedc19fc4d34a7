from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


ROLE_ADMIN = "admin"
ROLE_AGENCY = "agency"
VALID_ROLES = (ROLE_ADMIN, ROLE_AGENCY)
VALID_STATUSES = ("active", "inactive")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role", "role"),
        Index("idx_users_agency_id", "agency_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_AGENCY)  # admin | agency
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")  # active | inactive

    # Plain id reference; kept consistent by the user/agency services (no FK cascade).
    agency_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    agency_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def session_payload(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name or self.username,
            "email": self.email,
            "role": self.role,
            "agencyId": str(self.agency_id) if self.agency_id else None,
            "agencyName": self.agency_name,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "status": self.status,
            "agencyId": self.agency_id,
            "agencyName": self.agency_name,
            "lastLogin": self.last_login.isoformat() if self.last_login else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Backs the admin/agency activity feeds; keep it generic.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        Index("idx_audit_events_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    actor_agency_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "application.create"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Application"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.portal.modules.agencies.models import Agency  # noqa: E402,F401
from app.portal.modules.colleges.models import College, Course  # noqa: E402,F401
from app.portal.modules.applications.models import Application  # noqa: E402,F401
from app.portal.modules.documents.models import Document  # noqa: E402,F401
from app.portal.modules.payments.models import OfflinePayment, Payment  # noqa: E402,F401
from app.portal.modules.settings.models import PortalSettings  # noqa: E402,F401
