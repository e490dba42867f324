"""Consulting Sessions Admin Router - session definitions, guarded by the superadmin token"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import verify_superadmin_token
from app.consulting.crud.admin import (
    cancel_session,
    create_session,
    delete_session,
    list_all_sessions,
    sweep_completed_sessions,
    to_admin_read,
    update_session,
)
from app.consulting.crud.sessions import get_session_roster
from app.consulting.schemas import (
    AdminSessionListResponse,
    AdminSessionRead,
    SessionCreate,
    SessionUpdate,
    SweepResponse,
)
from app.consulting.services.time_window import utcnow

router = APIRouter(
    prefix="/admin/consulting-sessions",
    tags=["Consulting Sessions Admin"],
    dependencies=[Depends(verify_superadmin_token)],
)


async def _read(db: AsyncSession, consulting) -> AdminSessionRead:
    roster = await get_session_roster(db, consulting.id)
    return to_admin_read(consulting, roster, utcnow())


@router.get("", response_model=AdminSessionListResponse)
async def get_all_sessions(db: AsyncSession = Depends(get_session)):
    """All sessions, newest first, with participant rosters"""
    sessions = await list_all_sessions(db)
    return AdminSessionListResponse(sessions=sessions)


@router.post("", response_model=AdminSessionRead, status_code=status.HTTP_201_CREATED)
async def create_consulting_session(
    session_data: SessionCreate,
    db: AsyncSession = Depends(get_session),
):
    """Create a session; date and time are read in the configured local zone"""
    consulting = await create_session(db, session_data)
    return await _read(db, consulting)


@router.put("/{session_id}", response_model=AdminSessionRead)
async def update_consulting_session(
    session_id: int,
    session_data: SessionUpdate,
    db: AsyncSession = Depends(get_session),
):
    """
    Partially update a session.

    Capacity cannot go below the number of enrolled participants; the
    ``full``/``available`` status follows the new capacity.
    """
    consulting = await update_session(db, session_id, session_data)
    return await _read(db, consulting)


@router.post("/{session_id}/cancel", response_model=AdminSessionRead)
async def cancel_consulting_session(
    session_id: int,
    db: AsyncSession = Depends(get_session),
):
    consulting = await cancel_session(db, session_id)
    return await _read(db, consulting)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_consulting_session(
    session_id: int,
    db: AsyncSession = Depends(get_session),
):
    await delete_session(db, session_id)


@router.post("/sweep", response_model=SweepResponse)
async def sweep_sessions(db: AsyncSession = Depends(get_session)):
    """Persist ``completed`` for every session whose end has passed"""
    completed, _ = await sweep_completed_sessions(db)
    return SweepResponse(completed=completed)
