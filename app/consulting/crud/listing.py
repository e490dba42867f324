"""Session Query Service - per-caller listings of consulting sessions"""
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.consulting.crud.sessions import (
    effective_status,
    get_enrolled_session_ids,
    list_sessions,
)
from app.consulting.models import ConsultingSession, SessionStatus
from app.consulting.schemas.sessions import SessionRange, SessionView
from app.consulting.services.time_window import (
    as_utc,
    classify,
    is_live,
    split_local,
    utcnow,
)


def to_session_view(
    consulting: ConsultingSession, enrolled: bool, now: datetime
) -> SessionView:
    window = classify(
        consulting.scheduled_at,
        consulting.duration_minutes,
        now,
        enrolled=enrolled,
        meeting_link=consulting.meeting_link,
    )
    local_date, local_time = split_local(consulting.scheduled_at)

    return SessionView(
        id=consulting.id,
        title=consulting.title,
        description=consulting.description or "",
        date=local_date,
        time=local_time,
        duration=consulting.duration_minutes,
        participants=consulting.current_participants,
        max_participants=consulting.max_participants,
        status=effective_status(consulting, now),
        instructor=consulting.instructor,
        platform=consulting.platform,
        meeting_link=consulting.meeting_link if enrolled else None,
        is_enrolled=enrolled,
        is_live=window.live,
        is_joinable=window.joinable,
        is_finished=window.finished,
    )


async def annotate_sessions(
    session: AsyncSession,
    sessions: Iterable[ConsultingSession],
    user_id: str,
    now: datetime,
) -> List[SessionView]:
    sessions = list(sessions)
    enrolled_ids = await get_enrolled_session_ids(
        session, user_id, [c.id for c in sessions]
    )
    return [to_session_view(c, c.id in enrolled_ids, now) for c in sessions]


async def list_for_user(
    session: AsyncSession,
    session_range: SessionRange,
    user_id: str,
    now: Optional[datetime] = None,
) -> List[SessionView]:
    now = now or utcnow()
    sessions = await list_sessions(session, session_range, now)
    return await annotate_sessions(session, sessions, user_id, now)


async def list_upcoming(
    session: AsyncSession, user_id: str, now: Optional[datetime] = None
) -> List[SessionView]:
    """Sessions that have not finished yet"""
    return await list_for_user(session, SessionRange.upcoming, user_id, now)


async def list_past(
    session: AsyncSession, user_id: str, now: Optional[datetime] = None
) -> List[SessionView]:
    """Finished sessions plus administratively cancelled/completed ones"""
    return await list_for_user(session, SessionRange.past, user_id, now)


async def list_live(
    session: AsyncSession, user_id: str, now: Optional[datetime] = None
) -> List[SessionView]:
    """Sessions inside their join window right now; cancelled ones excluded"""
    now = now or utcnow()
    candidates = await list_sessions(
        session, SessionRange.upcoming, now
    ) + await list_sessions(session, SessionRange.past, now)
    live = sorted(
        (
            c
            for c in candidates
            if c.status != SessionStatus.cancelled.value
            and is_live(c.scheduled_at, c.duration_minutes, now)
        ),
        key=lambda c: (as_utc(c.scheduled_at), c.id),
    )
    return await annotate_sessions(session, live, user_id, now)
