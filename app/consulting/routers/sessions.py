"""Consulting Sessions Router - listing, enrollment and cancellation for members"""
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import RATE_LIMIT_ENROLL, RATE_LIMIT_LIST
from app.core.database import get_session
from app.core.dependencies import get_current_user_id
from app.core.limits import limiter
from app.consulting.crud.bookings import (
    BookingResult,
    cancel_enrollment,
    enroll_in_session,
)
from app.consulting.crud.listing import list_for_user, list_live
from app.consulting.schemas import (
    BookedSessionInfo,
    CancelResponse,
    EnrollResponse,
    SessionActionRequest,
    SessionListResponse,
    SessionRange,
)
from app.consulting.services.notification_service import (
    ENROLLED_EVENT,
    ENROLLMENT_CANCELLED_EVENT,
    notification_dispatcher,
)
from app.consulting.services.time_window import split_local

router = APIRouter(
    prefix="/academy/consulting-sessions", tags=["Consulting Sessions"]
)


def _booked_info(result: BookingResult) -> BookedSessionInfo:
    consulting = result.session
    local_date, local_time = split_local(consulting.scheduled_at)
    return BookedSessionInfo(
        id=consulting.id,
        title=consulting.title,
        date=local_date,
        time=local_time,
        participants=consulting.current_participants,
        max_participants=consulting.max_participants,
        status=consulting.status,
    )


@router.get("", response_model=SessionListResponse)
@limiter.limit(RATE_LIMIT_LIST)
async def get_sessions(
    request: Request,
    type: SessionRange = Query(SessionRange.upcoming, description="upcoming or past"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """
    List consulting sessions.

    ``upcoming`` holds every session that has not finished yet, ``past``
    the finished ones plus administratively closed sessions. The meeting
    link is only returned for sessions the caller is enrolled in.
    """
    sessions = await list_for_user(db, type, user_id)
    return SessionListResponse(sessions=sessions)


@router.get("/live", response_model=SessionListResponse)
@limiter.limit(RATE_LIMIT_LIST)
async def get_live_sessions(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Sessions inside their join window right now"""
    sessions = await list_live(db, user_id)
    return SessionListResponse(sessions=sessions)


@router.post("/schedule", response_model=EnrollResponse)
@limiter.limit(RATE_LIMIT_ENROLL)
async def schedule_session(
    request: Request,
    action: SessionActionRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """
    Enroll the caller in a consulting session.

    Repeating the request for a session the caller is already enrolled in
    succeeds with ``already_enrolled`` set and takes no second seat.
    """
    result = await enroll_in_session(db, action.session_id, user_id)
    info = _booked_info(result)

    if result.already_enrolled:
        return EnrollResponse(
            message="Você já está inscrito nesta sessão",
            already_enrolled=True,
            session=info,
        )

    background_tasks.add_task(
        notification_dispatcher.notify,
        user_id,
        ENROLLED_EVENT,
        info.model_dump(mode="json"),
    )
    return EnrollResponse(message="Inscrição realizada com sucesso!", session=info)


@router.post("/cancel", response_model=CancelResponse)
@limiter.limit(RATE_LIMIT_ENROLL)
async def cancel_session_enrollment(
    request: Request,
    action: SessionActionRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Give back the caller's seat; only possible before the session ends"""
    result = await cancel_enrollment(db, action.session_id, user_id)
    info = _booked_info(result)

    background_tasks.add_task(
        notification_dispatcher.notify,
        user_id,
        ENROLLMENT_CANCELLED_EVENT,
        info.model_dump(mode="json"),
    )
    return CancelResponse(message="Inscrição cancelada com sucesso.", session=info)
