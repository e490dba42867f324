"""Session Administration - operator writes to session definitions"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, case, func, update
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import db_operation
from app.core.exceptions import BusinessLogicError, ValidationError
from app.core.logging_utils import log_business_event
from app.consulting.crud.sessions import (
    effective_status,
    get_session_by_id,
    get_session_roster,
)
from app.consulting.models import (
    ConsultingSession,
    SessionEnrollment,
    SessionStatus,
    TERMINAL_STATUSES,
)
from app.consulting.schemas.admin import AdminSessionRead, SessionCreate, SessionUpdate
from app.consulting.services.session_locks import session_locks
from app.consulting.services.time_window import (
    combine_local,
    is_finished,
    split_local,
    utcnow,
)


def _parse_time(value: str):
    return datetime.strptime(value, "%H:%M").time()


def to_admin_read(
    consulting: ConsultingSession, roster: List[str], now: datetime
) -> AdminSessionRead:
    local_date, local_time = split_local(consulting.scheduled_at)
    return AdminSessionRead(
        id=consulting.id,
        title=consulting.title,
        description=consulting.description or "",
        date=local_date,
        time=local_time,
        scheduled_at=consulting.scheduled_at,
        duration=consulting.duration_minutes,
        max_participants=consulting.max_participants,
        current_participants=consulting.current_participants,
        status=consulting.status,
        effective_status=effective_status(consulting, now),
        instructor=consulting.instructor,
        platform=consulting.platform,
        meeting_link=consulting.meeting_link,
        participants=roster,
        created_at=consulting.created_at,
        updated_at=consulting.updated_at,
    )


@db_operation
async def list_all_sessions(
    session: AsyncSession, now: Optional[datetime] = None
) -> List[AdminSessionRead]:
    """All sessions, newest first, with their active rosters"""
    now = now or utcnow()
    result = await session.execute(
        select(ConsultingSession).order_by(
            ConsultingSession.scheduled_at.desc(), ConsultingSession.id.desc()
        )
    )
    sessions = result.scalars().all()

    reads = []
    for consulting in sessions:
        roster = await get_session_roster(session, consulting.id)
        reads.append(to_admin_read(consulting, roster, now))
    return reads


@db_operation
async def create_session(
    session: AsyncSession, session_data: SessionCreate
) -> ConsultingSession:
    consulting = ConsultingSession(
        title=session_data.title,
        description=session_data.description or "",
        instructor=session_data.instructor,
        scheduled_at=combine_local(session_data.date, _parse_time(session_data.time)),
        duration_minutes=session_data.duration,
        max_participants=session_data.max_participants,
        current_participants=0,
        status=session_data.status,
        platform=session_data.platform,
        meeting_link=session_data.meeting_link or None,
    )
    session.add(consulting)
    await session.commit()
    await session.refresh(consulting)

    log_business_event(
        "session_created",
        "consulting_session",
        consulting.id,
        {"scheduled_at": consulting.scheduled_at.isoformat()},
    )
    return consulting


async def _set_capacity(
    session: AsyncSession, session_id: int, new_capacity: int
) -> None:
    """
    Conditional write on the seat counter, like enroll/cancel: an enroll
    committed by another worker after the row was loaded is still seen here.
    """
    current = ConsultingSession.current_participants
    result = await session.execute(
        update(ConsultingSession)
        .where(
            and_(
                ConsultingSession.id == session_id,
                current <= new_capacity,
            )
        )
        .values(
            max_participants=new_capacity,
            status=case(
                (
                    ConsultingSession.status.in_(TERMINAL_STATUSES),
                    ConsultingSession.status,
                ),
                (current >= new_capacity, SessionStatus.full.value),
                (
                    ConsultingSession.status == SessionStatus.full.value,
                    SessionStatus.available.value,
                ),
                else_=ConsultingSession.status,
            ),
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        participants = await session.scalar(
            select(current).where(ConsultingSession.id == session_id)
        )
        raise ValidationError(
            "max_participants cannot be lower than the current number of participants",
            {
                "max_participants": new_capacity,
                "current_participants": participants,
            },
        )


@db_operation
async def update_session(
    session: AsyncSession, session_id: int, session_data: SessionUpdate
) -> ConsultingSession:
    """
    Partial update. Capacity and schedule changes are serialised with
    enroll/cancel on the same session so no booking sees a stale capacity.
    """
    async with session_locks.hold(session_id):
        try:
            consulting = await _update_locked(session, session_id, session_data)
        except Exception:
            await session.rollback()
            raise

    log_business_event(
        "session_updated",
        "consulting_session",
        session_id,
        {"fields": sorted(session_data.model_dump(exclude_unset=True).keys())},
    )
    return consulting


async def _update_locked(
    session: AsyncSession, session_id: int, session_data: SessionUpdate
) -> ConsultingSession:
    consulting = await get_session_by_id(session, session_id)
    update_data = session_data.model_dump(exclude_unset=True)

    new_capacity = update_data.pop("max_participants", None)
    if new_capacity is not None:
        await _set_capacity(session, session_id, new_capacity)

    if "date" in update_data or "time" in update_data:
        local_date, local_time = split_local(consulting.scheduled_at)
        new_date = update_data.pop("date", None) or local_date
        new_time = update_data.pop("time", None) or local_time
        consulting.scheduled_at = combine_local(new_date, _parse_time(new_time))

    if "duration" in update_data:
        consulting.duration_minutes = update_data.pop("duration")

    if "meeting_link" in update_data:
        consulting.meeting_link = update_data.pop("meeting_link") or None

    for field, value in update_data.items():
        if value is not None:
            setattr(consulting, field, value)

    await session.commit()
    await session.refresh(consulting)
    return consulting


@db_operation
async def cancel_session(session: AsyncSession, session_id: int) -> ConsultingSession:
    """Administrative cancellation; the roster is kept as is"""
    async with session_locks.hold(session_id):
        consulting = await get_session_by_id(session, session_id)

        if consulting.status == SessionStatus.completed.value:
            raise BusinessLogicError(
                "Completed sessions cannot be cancelled", {"session_id": session_id}
            )

        if consulting.status != SessionStatus.cancelled.value:
            consulting.status = SessionStatus.cancelled.value
            await session.commit()
            await session.refresh(consulting)

    log_business_event("session_cancelled", "consulting_session", session_id)
    return consulting


@db_operation
async def delete_session(session: AsyncSession, session_id: int) -> None:
    """
    Delete a session that never had an enrollment.

    Sessions with any ledger rows, active or cancelled, are part of the
    audit trail and have to be cancelled instead.
    """
    async with session_locks.hold(session_id):
        consulting = await get_session_by_id(session, session_id)

        result = await session.execute(
            select(func.count())
            .select_from(SessionEnrollment)
            .where(SessionEnrollment.session_id == session_id)
        )
        if result.scalar():
            raise BusinessLogicError(
                "Sessions with enrollments cannot be deleted, cancel them instead",
                {"session_id": session_id},
            )

        await session.delete(consulting)
        await session.commit()

    log_business_event("session_deleted", "consulting_session", session_id)


@db_operation
async def sweep_completed_sessions(
    session: AsyncSession, now: Optional[datetime] = None
) -> Tuple[int, List[int]]:
    """
    Persist ``completed`` for sessions whose end has passed.

    Only a listing optimisation: reads derive the same status from the
    clock whether or not this ran.
    """
    now = now or utcnow()
    result = await session.execute(
        select(
            ConsultingSession.id,
            ConsultingSession.scheduled_at,
            ConsultingSession.duration_minutes,
        ).where(
            and_(
                ConsultingSession.status.notin_(TERMINAL_STATUSES),
                ConsultingSession.scheduled_at < now,
            )
        )
    )
    finished_ids = [
        row.id
        for row in result.all()
        if is_finished(row.scheduled_at, row.duration_minutes, now)
    ]
    # Release the read transaction before taking per-session locks
    await session.commit()

    completed = []
    for session_id in finished_ids:
        async with session_locks.hold(session_id):
            updated = await session.execute(
                update(ConsultingSession)
                .where(
                    and_(
                        ConsultingSession.id == session_id,
                        ConsultingSession.status.notin_(TERMINAL_STATUSES),
                    )
                )
                .values(status=SessionStatus.completed.value)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            if updated.rowcount == 1:
                completed.append(session_id)

    if completed:
        log_business_event(
            "sessions_completed_by_sweep",
            "consulting_session",
            None,
            {"session_ids": completed},
        )
    return len(completed), completed
