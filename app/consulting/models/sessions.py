"""Consulting Session Model - live group sessions with a hard seat cap"""
from enum import Enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class SessionStatus(str, Enum):
    """Stored status of a consulting session"""
    scheduled = "scheduled"
    available = "available"
    full = "full"
    completed = "completed"  # terminal
    cancelled = "cancelled"  # terminal


TERMINAL_STATUSES = (SessionStatus.completed.value, SessionStatus.cancelled.value)
ACTIVE_STATUSES = (
    SessionStatus.scheduled.value,
    SessionStatus.available.value,
    SessionStatus.full.value,
)


class SessionPlatform(str, Enum):
    zoom = "zoom"
    meet = "meet"
    teams = "teams"
    other = "other"


class ConsultingSession(Base):
    __tablename__ = "consulting_sessions"

    id = Column(Integer, primary_key=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    instructor = Column(String(255), nullable=False)

    # Absolute instant, stored in UTC
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)

    # Capacity is written by administration only
    max_participants = Column(Integer, nullable=False, default=20)
    # Written by the booking service only
    current_participants = Column(Integer, nullable=False, default=0)

    status = Column(
        String(20),
        default=SessionStatus.available.value,
        nullable=False,
        index=True,
    )

    platform = Column(String(20), default=SessionPlatform.zoom.value, nullable=False)
    meeting_link = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    enrollments = relationship(
        "SessionEnrollment",
        back_populates="session",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("duration_minutes >= 0", name="ck_consulting_sessions_duration"),
        CheckConstraint("max_participants >= 1", name="ck_consulting_sessions_capacity"),
        CheckConstraint(
            "current_participants >= 0", name="ck_consulting_sessions_participants"
        ),
        CheckConstraint(
            "current_participants <= max_participants",
            name="ck_consulting_sessions_within_capacity",
        ),
        Index("ix_consulting_sessions_scheduled_status", "scheduled_at", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return (
            f"<ConsultingSession(id={self.id}, scheduled_at={self.scheduled_at}, "
            f"participants={self.current_participants}/{self.max_participants}, status={self.status})>"
        )
