from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.portal.models import Base


class College(Base):
    __tablename__ = "colleges"
    __table_args__ = (
        Index("idx_colleges_name", "name"),
        Index("idx_colleges_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    type: Mapped[str | None] = mapped_column(String(64), nullable=True)  # e.g. "University", "Institute"
    ranking: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    facilities: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    established_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    courses: Mapped[list["Course"]] = relationship(
        "Course",
        back_populates="college",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Course.name",
    )

    def to_dict(self, *, include_courses: bool = False) -> dict:
        out = {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "type": self.type,
            "ranking": self.ranking,
            "description": self.description,
            "email": self.email,
            "phone": self.phone,
            "website": self.website,
            "facilities": list(self.facilities or []),
            "establishedYear": self.established_year,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_courses:
            out["courses"] = [c.to_dict() for c in self.courses]
        return out


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (Index("idx_courses_college_id", "college_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    college_id: Mapped[int] = mapped_column(ForeignKey("colleges.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    level: Mapped[str | None] = mapped_column(String(64), nullable=True)  # UG, PG, Diploma...
    duration: Mapped[str | None] = mapped_column(String(64), nullable=True)
    fee: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="INR")
    requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    sessions: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    course_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    streams: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    college: Mapped["College"] = relationship("College", back_populates="courses")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "collegeId": self.college_id,
            "name": self.name,
            "level": self.level,
            "duration": self.duration,
            "fee": self.fee,
            "currency": self.currency,
            "requirements": self.requirements,
            "sessions": list(self.sessions or []),
            "courseType": self.course_type,
            "streams": list(self.streams or []),
            "status": self.status,
        }
