"""Consulting CRUD Package"""
from .sessions import (
    effective_status,
    is_closed,
    get_session_by_id,
    list_sessions,
    count_active_enrollments,
    get_active_enrollment,
    has_active_enrollment,
    get_enrolled_session_ids,
    get_session_roster,
)
from .bookings import BookingResult, enroll_in_session, cancel_enrollment
from .listing import list_for_user, list_upcoming, list_past, list_live
from .admin import (
    list_all_sessions,
    create_session,
    update_session,
    cancel_session,
    delete_session,
    sweep_completed_sessions,
)
