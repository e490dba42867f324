"""Consulting Schemas Package"""
from .sessions import SessionRange, SessionView, SessionListResponse
from .bookings import (
    SessionActionRequest,
    BookedSessionInfo,
    EnrollResponse,
    CancelResponse,
)
from .admin import (
    SessionCreate,
    SessionUpdate,
    AdminSessionRead,
    AdminSessionListResponse,
    SweepResponse,
)

__all__ = [
    "SessionRange",
    "SessionView",
    "SessionListResponse",
    "SessionActionRequest",
    "BookedSessionInfo",
    "EnrollResponse",
    "CancelResponse",
    "SessionCreate",
    "SessionUpdate",
    "AdminSessionRead",
    "AdminSessionListResponse",
    "SweepResponse",
]
