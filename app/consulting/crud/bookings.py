"""Booking Service - capacity-safe enroll/cancel for consulting sessions"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import db_operation
from app.core.exceptions import (
    NotEnrolledError,
    SessionAlreadyFinishedError,
    SessionCancelledOrFinishedError,
    SessionFullError,
)
from app.core.logging_utils import log_business_event
from app.consulting.crud.sessions import (
    effective_status,
    get_active_enrollment,
    get_session_by_id,
    is_closed,
)
from app.consulting.models import (
    ConsultingSession,
    EnrollmentStatus,
    SessionEnrollment,
    SessionStatus,
    TERMINAL_STATUSES,
)
from app.consulting.services.session_locks import session_locks
from app.consulting.services.time_window import is_finished, utcnow

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    session: ConsultingSession
    already_enrolled: bool = False


@db_operation
async def enroll_in_session(
    session: AsyncSession,
    session_id: int,
    user_id: str,
    now: Optional[datetime] = None,
) -> BookingResult:
    """
    Claim a seat in a consulting session.

    Runs under the per-session lock; the seat itself is taken by a
    conditional UPDATE so that concurrent workers can never push
    ``current_participants`` past ``max_participants``.

    Raises:
        SessionNotFoundError, SessionCancelledOrFinishedError, SessionFullError
    """
    now = now or utcnow()

    async with session_locks.hold(session_id):
        try:
            return await _enroll_locked(session, session_id, user_id, now)
        except Exception:
            await session.rollback()
            raise


async def _enroll_locked(
    session: AsyncSession, session_id: int, user_id: str, now: datetime
) -> BookingResult:
    consulting = await get_session_by_id(session, session_id)

    if is_closed(consulting, now):
        raise SessionCancelledOrFinishedError(
            session_id, effective_status(consulting, now)
        )

    # Idempotent: a retried enroll returns the current state
    if await get_active_enrollment(session, session_id, user_id):
        logger.info(
            f"User {user_id} already enrolled in consulting session {session_id}"
        )
        return BookingResult(consulting, already_enrolled=True)

    next_count = ConsultingSession.current_participants + 1
    result = await session.execute(
        update(ConsultingSession)
        .where(
            and_(
                ConsultingSession.id == session_id,
                ConsultingSession.current_participants
                < ConsultingSession.max_participants,
                ConsultingSession.status.notin_(TERMINAL_STATUSES),
            )
        )
        .values(
            current_participants=next_count,
            status=case(
                (
                    next_count >= ConsultingSession.max_participants,
                    SessionStatus.full.value,
                ),
                else_=ConsultingSession.status,
            ),
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        await session.rollback()
        consulting = await get_session_by_id(session, session_id)
        if is_closed(consulting, now):
            raise SessionCancelledOrFinishedError(
                session_id, effective_status(consulting, now)
            )
        raise SessionFullError(session_id, consulting.max_participants)

    session.add(
        SessionEnrollment(
            session_id=session_id,
            user_id=user_id,
            status=EnrollmentStatus.active.value,
            enrolled_at=now,
        )
    )

    try:
        await session.commit()
    except IntegrityError:
        # Same user enrolled from another worker first; the rollback also
        # returns the seat taken above
        await session.rollback()
        if await get_active_enrollment(session, session_id, user_id):
            consulting = await get_session_by_id(session, session_id)
            return BookingResult(consulting, already_enrolled=True)
        raise

    await session.refresh(consulting)

    log_business_event(
        "session_enrolled",
        "consulting_session",
        session_id,
        {
            "user_id": user_id,
            "participants": consulting.current_participants,
            "max_participants": consulting.max_participants,
            "status": consulting.status,
        },
    )

    return BookingResult(consulting)


@db_operation
async def cancel_enrollment(
    session: AsyncSession,
    session_id: int,
    user_id: str,
    now: Optional[datetime] = None,
) -> BookingResult:
    """
    Give back a seat.

    The enrollment row is soft-invalidated, never deleted. Once the
    session has finished its roster is frozen.

    Raises:
        SessionNotFoundError, NotEnrolledError, SessionAlreadyFinishedError,
        SessionCancelledOrFinishedError
    """
    now = now or utcnow()

    async with session_locks.hold(session_id):
        try:
            return await _cancel_locked(session, session_id, user_id, now)
        except Exception:
            await session.rollback()
            raise


async def _cancel_locked(
    session: AsyncSession, session_id: int, user_id: str, now: datetime
) -> BookingResult:
    consulting = await get_session_by_id(session, session_id)

    enrollment = await get_active_enrollment(session, session_id, user_id)
    if not enrollment:
        raise NotEnrolledError(session_id)

    if consulting.status == SessionStatus.completed.value or is_finished(
        consulting.scheduled_at, consulting.duration_minutes, now
    ):
        raise SessionAlreadyFinishedError(session_id)

    if consulting.status == SessionStatus.cancelled.value:
        raise SessionCancelledOrFinishedError(session_id, consulting.status)

    released = await session.execute(
        update(SessionEnrollment)
        .where(
            and_(
                SessionEnrollment.id == enrollment.id,
                SessionEnrollment.status == EnrollmentStatus.active.value,
            )
        )
        .values(status=EnrollmentStatus.cancelled.value, cancelled_at=now)
    )
    if released.rowcount != 1:
        # Cancelled concurrently from another worker
        await session.rollback()
        raise NotEnrolledError(session_id)

    next_count = ConsultingSession.current_participants - 1
    await session.execute(
        update(ConsultingSession)
        .where(
            and_(
                ConsultingSession.id == session_id,
                ConsultingSession.current_participants > 0,
            )
        )
        .values(
            current_participants=next_count,
            status=case(
                (
                    and_(
                        ConsultingSession.status == SessionStatus.full.value,
                        next_count < ConsultingSession.max_participants,
                    ),
                    SessionStatus.available.value,
                ),
                else_=ConsultingSession.status,
            ),
        )
        .execution_options(synchronize_session=False)
    )

    await session.commit()
    await session.refresh(consulting)

    log_business_event(
        "session_enrollment_cancelled",
        "consulting_session",
        session_id,
        {
            "user_id": user_id,
            "participants": consulting.current_participants,
            "status": consulting.status,
        },
    )

    return BookingResult(consulting)
