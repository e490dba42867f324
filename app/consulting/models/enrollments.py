"""Session Enrollment Model - ledger of seats claimed in consulting sessions"""
from enum import Enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Index,
    text,
)
from sqlalchemy.orm import relationship

from app.core.database import Base


class EnrollmentStatus(str, Enum):
    active = "active"
    cancelled = "cancelled"


class SessionEnrollment(Base):
    """
    One row per enroll call that took a seat.

    Cancelled rows are kept for the audit trail; re-enrolling after a cancel
    inserts a new row.
    """
    __tablename__ = "consulting_session_enrollments"

    id = Column(Integer, primary_key=True, index=True)

    session_id = Column(
        Integer,
        ForeignKey("consulting_sessions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(64), nullable=False, index=True)

    status = Column(
        String(20), default=EnrollmentStatus.active.value, nullable=False, index=True
    )

    enrolled_at = Column(DateTime(timezone=True), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    session = relationship("ConsultingSession", back_populates="enrollments")

    __table_args__ = (
        # At most one active seat per user and session
        Index(
            "uq_consulting_enrollment_active",
            "session_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_consulting_enrollment_session_status", "session_id", "status"),
    )

    def __repr__(self):
        return f"<SessionEnrollment(id={self.id}, session_id={self.session_id}, user_id={self.user_id}, status={self.status})>"
