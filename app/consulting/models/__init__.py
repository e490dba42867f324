from app.core.database import Base
from .sessions import (
    ConsultingSession,
    SessionStatus,
    SessionPlatform,
    TERMINAL_STATUSES,
    ACTIVE_STATUSES,
)
from .enrollments import SessionEnrollment, EnrollmentStatus

__all__ = [
    "Base",
    "ConsultingSession",
    "SessionStatus",
    "SessionPlatform",
    "TERMINAL_STATUSES",
    "ACTIVE_STATUSES",
    "SessionEnrollment",
    "EnrollmentStatus",
]
