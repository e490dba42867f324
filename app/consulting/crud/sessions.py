"""Session Store & Enrollment Ledger - read operations"""
from datetime import datetime
from typing import Iterable, List, Optional, Set

from sqlalchemy import and_, func, or_
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import db_operation
from app.core.exceptions import SessionNotFoundError
from app.consulting.models import (
    ConsultingSession,
    SessionEnrollment,
    EnrollmentStatus,
    SessionStatus,
    TERMINAL_STATUSES,
)
from app.consulting.schemas.sessions import SessionRange
from app.consulting.services.time_window import is_finished, utcnow


def effective_status(consulting: ConsultingSession, now: datetime) -> str:
    """Stored status with the time-based ``completed`` projected on top"""
    if consulting.is_terminal:
        return consulting.status
    if is_finished(consulting.scheduled_at, consulting.duration_minutes, now):
        return SessionStatus.completed.value
    return consulting.status


def is_closed(consulting: ConsultingSession, now: datetime) -> bool:
    """Cancelled, completed, or past its end"""
    return effective_status(consulting, now) in TERMINAL_STATUSES


@db_operation
async def get_session_by_id(
    session: AsyncSession, session_id: int
) -> ConsultingSession:
    result = await session.execute(
        select(ConsultingSession)
        .where(ConsultingSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    consulting = result.scalar_one_or_none()

    if not consulting:
        raise SessionNotFoundError(session_id)

    return consulting


@db_operation
async def list_sessions(
    session: AsyncSession,
    session_range: SessionRange,
    now: Optional[datetime] = None,
) -> List[ConsultingSession]:
    """
    Sessions of one listing partition, ascending by ``scheduled_at``.

    The SQL filter only narrows candidates; the end-of-session check is
    applied in Python through the time-window classifier.
    """
    now = now or utcnow()

    if session_range == SessionRange.upcoming:
        # No start-time bound: each row runs for its own stored duration
        query = select(ConsultingSession).where(
            ConsultingSession.status.notin_(TERMINAL_STATUSES)
        )
    else:
        # Finished implies the start is in the past
        query = select(ConsultingSession).where(
            or_(
                ConsultingSession.status.in_(TERMINAL_STATUSES),
                ConsultingSession.scheduled_at < now,
            )
        )

    result = await session.execute(
        query.order_by(ConsultingSession.scheduled_at.asc(), ConsultingSession.id.asc())
        .execution_options(populate_existing=True)
    )
    candidates = result.scalars().all()

    if session_range == SessionRange.upcoming:
        return [c for c in candidates if not is_closed(c, now)]
    return [c for c in candidates if is_closed(c, now)]


@db_operation
async def count_active_enrollments(session: AsyncSession, session_id: int) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(SessionEnrollment)
        .where(
            and_(
                SessionEnrollment.session_id == session_id,
                SessionEnrollment.status == EnrollmentStatus.active.value,
            )
        )
    )
    return result.scalar() or 0


@db_operation
async def get_active_enrollment(
    session: AsyncSession, session_id: int, user_id: str
) -> Optional[SessionEnrollment]:
    result = await session.execute(
        select(SessionEnrollment).where(
            and_(
                SessionEnrollment.session_id == session_id,
                SessionEnrollment.user_id == user_id,
                SessionEnrollment.status == EnrollmentStatus.active.value,
            )
        )
    )
    return result.scalar_one_or_none()


async def has_active_enrollment(
    session: AsyncSession, session_id: int, user_id: str
) -> bool:
    return await get_active_enrollment(session, session_id, user_id) is not None


@db_operation
async def get_enrolled_session_ids(
    session: AsyncSession, user_id: str, session_ids: Iterable[int]
) -> Set[int]:
    """Subset of ``session_ids`` where the user holds an active seat"""
    ids = list(session_ids)
    if not ids:
        return set()

    result = await session.execute(
        select(SessionEnrollment.session_id).where(
            and_(
                SessionEnrollment.user_id == user_id,
                SessionEnrollment.session_id.in_(ids),
                SessionEnrollment.status == EnrollmentStatus.active.value,
            )
        )
    )
    return set(result.scalars().all())


@db_operation
async def get_session_roster(session: AsyncSession, session_id: int) -> List[str]:
    """Active user ids in enrollment order"""
    result = await session.execute(
        select(SessionEnrollment.user_id)
        .where(
            and_(
                SessionEnrollment.session_id == session_id,
                SessionEnrollment.status == EnrollmentStatus.active.value,
            )
        )
        .order_by(SessionEnrollment.enrolled_at.asc(), SessionEnrollment.id.asc())
    )
    return list(result.scalars().all())
