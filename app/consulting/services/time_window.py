"""
Time-window classification for consulting sessions.

Everything here is pure: given the scheduled start, the duration and the
current instant, derive whether a session is live, joinable or finished.
Nothing computed here is persisted as the source of truth.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from app.core.config import JOIN_WINDOW_LEAD_MINUTES, SESSION_TIMEZONE

JOIN_WINDOW_LEAD = timedelta(minutes=JOIN_WINDOW_LEAD_MINUTES)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes coming back from the store are UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def session_bounds(scheduled_at: datetime, duration_minutes: int) -> Tuple[datetime, datetime]:
    """Return ``(start, end)`` of the session, both in UTC"""
    start = as_utc(scheduled_at)
    return start, start + timedelta(minutes=duration_minutes)


def is_live(scheduled_at: datetime, duration_minutes: int, now: datetime) -> bool:
    start, end = session_bounds(scheduled_at, duration_minutes)
    return start - JOIN_WINDOW_LEAD <= as_utc(now) <= end


def is_finished(scheduled_at: datetime, duration_minutes: int, now: datetime) -> bool:
    _, end = session_bounds(scheduled_at, duration_minutes)
    return as_utc(now) > end


def is_joinable(
    scheduled_at: datetime,
    duration_minutes: int,
    now: datetime,
    enrolled: bool,
    meeting_link: Optional[str],
) -> bool:
    return bool(enrolled and meeting_link) and is_live(
        scheduled_at, duration_minutes, now
    )


@dataclass(frozen=True)
class SessionWindow:
    live: bool
    joinable: bool
    finished: bool


def classify(
    scheduled_at: datetime,
    duration_minutes: int,
    now: datetime,
    enrolled: bool = False,
    meeting_link: Optional[str] = None,
) -> SessionWindow:
    return SessionWindow(
        live=is_live(scheduled_at, duration_minutes, now),
        joinable=is_joinable(scheduled_at, duration_minutes, now, enrolled, meeting_link),
        finished=is_finished(scheduled_at, duration_minutes, now),
    )


# ===== Local calendar helpers (single configured locale) =====

def local_zone() -> ZoneInfo:
    return ZoneInfo(SESSION_TIMEZONE)


def combine_local(day: date, start: time) -> datetime:
    """Combine a local calendar date and wall-clock time into a UTC instant"""
    return datetime.combine(day, start, tzinfo=local_zone()).astimezone(timezone.utc)


def split_local(scheduled_at: datetime) -> Tuple[date, str]:
    """Split an instant into the local ``date`` and ``HH:MM`` shown to users"""
    local = as_utc(scheduled_at).astimezone(local_zone())
    return local.date(), local.strftime("%H:%M")
