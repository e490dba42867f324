"""
Booking Service tests

Concurrent scenarios run every enroll/cancel on its own AsyncSession, the
way separate requests would.
"""
import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from app.core.exceptions import (
    NotEnrolledError,
    SessionAlreadyFinishedError,
    SessionCancelledOrFinishedError,
    SessionFullError,
    SessionNotFoundError,
)
from app.consulting.crud.admin import cancel_session
from app.consulting.crud.bookings import cancel_enrollment, enroll_in_session
from app.consulting.crud.sessions import (
    count_active_enrollments,
    get_session_by_id,
    has_active_enrollment,
)
from app.consulting.models import EnrollmentStatus, SessionEnrollment, SessionStatus
from tests.conftest import NOW, NoLocks


async def _enroll(session_factory, session_id, user_id, now=NOW):
    async with session_factory() as db:
        try:
            return await enroll_in_session(db, session_id, user_id, now=now)
        except SessionFullError as e:
            return e


async def _reload(session_factory, session_id):
    async with session_factory() as db:
        return await get_session_by_id(db, session_id)


def _assert_status_matches_capacity(consulting):
    assert consulting.current_participants <= consulting.max_participants
    if consulting.current_participants == consulting.max_participants:
        assert consulting.status == SessionStatus.full.value
    else:
        assert consulting.status != SessionStatus.full.value


class TestEnroll:
    @pytest.mark.asyncio
    async def test_enroll_takes_a_seat(self, db, make_session):
        consulting = await make_session(max_participants=5)

        result = await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        assert result.already_enrolled is False
        assert result.session.current_participants == 1
        assert result.session.status == SessionStatus.available.value
        assert await count_active_enrollments(db, consulting.id) == 1

    @pytest.mark.asyncio
    async def test_unknown_session(self, db):
        with pytest.raises(SessionNotFoundError) as exc_info:
            await enroll_in_session(db, 999, "user-1", now=NOW)
        assert exc_info.value.error_code == "SESSION_NOT_FOUND"
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_last_seat_marks_session_full(self, db, make_session):
        consulting = await make_session(max_participants=1)

        result = await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        assert result.session.current_participants == 1
        assert result.session.status == SessionStatus.full.value

    @pytest.mark.asyncio
    async def test_full_session_is_rejected(self, db, make_session):
        consulting = await make_session(
            max_participants=2, current_participants=2, status=SessionStatus.full.value
        )

        with pytest.raises(SessionFullError) as exc_info:
            await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["max_participants"] == 2
        assert await count_active_enrollments(db, consulting.id) == 0

    @pytest.mark.asyncio
    async def test_cancelled_session_is_rejected(self, db, make_session):
        consulting = await make_session(status=SessionStatus.cancelled.value)

        with pytest.raises(SessionCancelledOrFinishedError):
            await enroll_in_session(db, consulting.id, "user-1", now=NOW)

    @pytest.mark.asyncio
    async def test_finished_session_is_rejected(self, db, make_session):
        # Stored status still "available", the clock says it is over
        consulting = await make_session(scheduled_at=NOW - timedelta(hours=2))

        with pytest.raises(SessionCancelledOrFinishedError) as exc_info:
            await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        assert exc_info.value.details["status"] == SessionStatus.completed.value

    @pytest.mark.asyncio
    async def test_session_in_progress_accepts_enrollment(self, db, make_session):
        consulting = await make_session(scheduled_at=NOW - timedelta(minutes=30))

        result = await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        assert result.session.current_participants == 1

    @pytest.mark.asyncio
    async def test_enroll_is_idempotent(self, db, make_session):
        consulting = await make_session(max_participants=5)

        first = await enroll_in_session(db, consulting.id, "user-1", now=NOW)
        second = await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        assert first.already_enrolled is False
        assert second.already_enrolled is True
        assert second.session.current_participants == 1
        assert await count_active_enrollments(db, consulting.id) == 1

    @pytest.mark.asyncio
    async def test_concurrent_enroll_of_same_user_takes_one_seat(
        self, session_factory, make_session
    ):
        consulting = await make_session(max_participants=5)

        results = await asyncio.gather(
            *(_enroll(session_factory, consulting.id, "user-1") for _ in range(4))
        )

        assert sum(1 for r in results if not r.already_enrolled) == 1
        reloaded = await _reload(session_factory, consulting.id)
        assert reloaded.current_participants == 1


class TestNoOverbooking:
    @pytest.mark.asyncio
    async def test_one_seat_left_many_callers(self, session_factory, make_session):
        consulting = await make_session(max_participants=3, current_participants=2)

        results = await asyncio.gather(
            *(_enroll(session_factory, consulting.id, f"user-{i}") for i in range(8))
        )

        winners = [r for r in results if not isinstance(r, SessionFullError)]
        assert len(winners) == 1
        assert sum(1 for r in results if isinstance(r, SessionFullError)) == 7

        reloaded = await _reload(session_factory, consulting.id)
        assert reloaded.current_participants == 3
        assert reloaded.status == SessionStatus.full.value

    @pytest.mark.asyncio
    async def test_two_users_race_for_single_seat(self, session_factory, make_session):
        consulting = await make_session(max_participants=1)

        results = await asyncio.gather(
            _enroll(session_factory, consulting.id, "alice"),
            _enroll(session_factory, consulting.id, "bob"),
        )

        assert sum(1 for r in results if isinstance(r, SessionFullError)) == 1
        reloaded = await _reload(session_factory, consulting.id)
        assert reloaded.current_participants == 1
        assert reloaded.status == SessionStatus.full.value

    @pytest.mark.asyncio
    async def test_seat_counter_is_the_final_guard(self, db, make_session):
        """A stale stored status must not let an enroll past the seat counter"""
        consulting = await make_session(
            max_participants=2,
            current_participants=2,
            status=SessionStatus.available.value,
        )

        with patch("app.consulting.crud.bookings.session_locks", NoLocks()):
            with pytest.raises(SessionFullError):
                await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        reloaded = await get_session_by_id(db, consulting.id)
        assert reloaded.current_participants == 2
        assert await count_active_enrollments(db, consulting.id) == 0


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_reopens_full_session(self, session_factory, make_session):
        consulting = await make_session(max_participants=2)
        await _enroll(session_factory, consulting.id, "alice")
        await _enroll(session_factory, consulting.id, "bob")
        _assert_status_matches_capacity(await _reload(session_factory, consulting.id))

        async with session_factory() as db:
            result = await cancel_enrollment(db, consulting.id, "alice", now=NOW)

        assert result.session.current_participants == 1
        assert result.session.status == SessionStatus.available.value

        third = await _enroll(session_factory, consulting.id, "carol")
        assert not isinstance(third, SessionFullError)
        reloaded = await _reload(session_factory, consulting.id)
        assert reloaded.current_participants == 2
        _assert_status_matches_capacity(reloaded)

    @pytest.mark.asyncio
    async def test_active_seat_follows_enroll_and_cancel(self, db, make_session):
        consulting = await make_session()
        assert await has_active_enrollment(db, consulting.id, "user-1") is False

        await enroll_in_session(db, consulting.id, "user-1", now=NOW)
        assert await has_active_enrollment(db, consulting.id, "user-1") is True
        assert await has_active_enrollment(db, consulting.id, "user-2") is False

        await cancel_enrollment(db, consulting.id, "user-1", now=NOW)
        assert await has_active_enrollment(db, consulting.id, "user-1") is False

    @pytest.mark.asyncio
    async def test_cancel_keeps_ledger_row(self, db, make_session):
        consulting = await make_session()
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        await cancel_enrollment(db, consulting.id, "user-1", now=NOW)

        rows = (
            await db.execute(
                select(SessionEnrollment).where(SessionEnrollment.session_id == consulting.id)
            )
        ).scalars().all()
        assert len(rows) == 1
        assert rows[0].status == EnrollmentStatus.cancelled.value
        assert rows[0].cancelled_at is not None

    @pytest.mark.asyncio
    async def test_reenroll_after_cancel_adds_new_row(self, db, make_session):
        consulting = await make_session()
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)
        await cancel_enrollment(db, consulting.id, "user-1", now=NOW)

        result = await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        assert result.already_enrolled is False
        assert result.session.current_participants == 1
        rows = (
            await db.execute(
                select(SessionEnrollment.status)
                .where(SessionEnrollment.session_id == consulting.id)
                .order_by(SessionEnrollment.id)
            )
        ).scalars().all()
        assert rows == [EnrollmentStatus.cancelled.value, EnrollmentStatus.active.value]

    @pytest.mark.asyncio
    async def test_cancel_without_enrollment(self, db, make_session):
        consulting = await make_session()

        with pytest.raises(NotEnrolledError) as exc_info:
            await cancel_enrollment(db, consulting.id, "user-1", now=NOW)
        assert exc_info.value.error_code == "NOT_ENROLLED"

    @pytest.mark.asyncio
    async def test_double_cancel_never_goes_negative(self, db, make_session):
        consulting = await make_session()
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)
        await cancel_enrollment(db, consulting.id, "user-1", now=NOW)

        with pytest.raises(NotEnrolledError):
            await cancel_enrollment(db, consulting.id, "user-1", now=NOW)

        reloaded = await get_session_by_id(db, consulting.id)
        assert reloaded.current_participants == 0

    @pytest.mark.asyncio
    async def test_concurrent_cancels_release_one_seat(self, session_factory, make_session):
        consulting = await make_session(max_participants=3)
        await _enroll(session_factory, consulting.id, "user-1")
        await _enroll(session_factory, consulting.id, "user-2")

        async def _cancel():
            async with session_factory() as db:
                try:
                    return await cancel_enrollment(db, consulting.id, "user-1", now=NOW)
                except NotEnrolledError as e:
                    return e

        results = await asyncio.gather(_cancel(), _cancel(), _cancel())

        assert sum(1 for r in results if isinstance(r, NotEnrolledError)) == 2
        reloaded = await _reload(session_factory, consulting.id)
        assert reloaded.current_participants == 1

    @pytest.mark.asyncio
    async def test_cancel_after_finish_is_rejected(self, session_factory, make_session):
        consulting = await make_session(scheduled_at=NOW - timedelta(hours=2))
        await _enroll(session_factory, consulting.id, "user-1", now=NOW - timedelta(hours=3))

        async with session_factory() as db:
            with pytest.raises(SessionAlreadyFinishedError) as exc_info:
                await cancel_enrollment(db, consulting.id, "user-1", now=NOW)

        assert exc_info.value.error_code == "SESSION_ALREADY_FINISHED"
        reloaded = await _reload(session_factory, consulting.id)
        assert reloaded.current_participants == 1

    @pytest.mark.asyncio
    async def test_cancel_on_completed_session_is_rejected(self, db, make_session):
        consulting = await make_session()
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)
        loaded = await get_session_by_id(db, consulting.id)
        loaded.status = SessionStatus.completed.value
        await db.commit()

        with pytest.raises(SessionAlreadyFinishedError):
            await cancel_enrollment(db, consulting.id, "user-1", now=NOW)

    @pytest.mark.asyncio
    async def test_cancel_on_cancelled_session_is_rejected(self, db, make_session):
        consulting = await make_session()
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)
        await cancel_session(db, consulting.id)

        with pytest.raises(SessionCancelledOrFinishedError):
            await cancel_enrollment(db, consulting.id, "user-1", now=NOW)
