from datetime import date, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import BusinessLogicError, SessionNotFoundError, ValidationError
from app.consulting.crud.admin import (
    cancel_session,
    create_session,
    delete_session,
    list_all_sessions,
    sweep_completed_sessions,
    update_session,
)
from app.consulting.crud.bookings import cancel_enrollment, enroll_in_session
from app.consulting.crud.listing import list_past
from app.consulting.crud.sessions import get_session_by_id
from app.consulting.models import SessionStatus
from app.consulting.schemas import SessionCreate, SessionUpdate
from tests.conftest import NOW, NoLocks


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_reads_local_date_and_time(self, db):
        consulting = await create_session(
            db,
            SessionCreate(
                title="Imposto de renda",
                date=date(2026, 3, 10),
                time="12:00",
                duration=90,
                max_participants=10,
                instructor="Carlos Lima",
                meeting_link="",
            ),
        )

        assert consulting.id is not None
        assert consulting.scheduled_at.replace(tzinfo=None) == NOW.replace(tzinfo=None)
        assert consulting.status == SessionStatus.available.value
        assert consulting.current_participants == 0
        assert consulting.meeting_link is None

    def test_meeting_link_must_be_http(self):
        with pytest.raises(ValueError):
            SessionCreate(
                title="x",
                date=date(2026, 3, 10),
                time="12:00",
                instructor="y",
                meeting_link="zoom://room",
            )


class TestUpdate:
    @pytest.mark.asyncio
    async def test_raising_capacity_reopens_full_session(self, db, make_session):
        consulting = await make_session(max_participants=1)
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        updated = await update_session(
            db, consulting.id, SessionUpdate(max_participants=3)
        )

        assert updated.max_participants == 3
        assert updated.status == SessionStatus.available.value

    @pytest.mark.asyncio
    async def test_lowering_capacity_to_roster_size_marks_full(self, db, make_session):
        consulting = await make_session(max_participants=5)
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)
        await enroll_in_session(db, consulting.id, "user-2", now=NOW)

        updated = await update_session(
            db, consulting.id, SessionUpdate(max_participants=2)
        )

        assert updated.status == SessionStatus.full.value

    @pytest.mark.asyncio
    async def test_capacity_below_roster_is_rejected(self, db, make_session):
        consulting = await make_session(max_participants=5)
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)
        await enroll_in_session(db, consulting.id, "user-2", now=NOW)

        with pytest.raises(ValidationError):
            await update_session(db, consulting.id, SessionUpdate(max_participants=1))

        reloaded = await get_session_by_id(db, consulting.id)
        assert reloaded.max_participants == 5

    @pytest.mark.asyncio
    async def test_capacity_cut_sees_seats_taken_by_another_worker(
        self, session_factory, make_session
    ):
        consulting = await make_session(max_participants=5)

        async def load_then_enroll_elsewhere(db, session_id):
            loaded = await get_session_by_id(db, session_id)
            for user_id in ("user-1", "user-2", "user-3"):
                async with session_factory() as other:
                    await enroll_in_session(other, session_id, user_id, now=NOW)
            return loaded

        with patch("app.consulting.crud.bookings.session_locks", NoLocks()), patch(
            "app.consulting.crud.admin.get_session_by_id", load_then_enroll_elsewhere
        ):
            async with session_factory() as db:
                with pytest.raises(ValidationError) as exc_info:
                    await update_session(
                        db, consulting.id, SessionUpdate(max_participants=1)
                    )

        assert exc_info.value.details["current_participants"] == 3
        async with session_factory() as db:
            reloaded = await get_session_by_id(db, consulting.id)
        assert reloaded.max_participants == 5
        assert reloaded.current_participants == 3
        assert reloaded.status == SessionStatus.available.value

    @pytest.mark.asyncio
    async def test_store_rejects_more_participants_than_seats(self, make_session):
        with pytest.raises(IntegrityError):
            await make_session(max_participants=2, current_participants=3)

    @pytest.mark.asyncio
    async def test_time_change_keeps_local_date(self, db, make_session):
        consulting = await make_session(scheduled_at=NOW)

        updated = await update_session(
            db, consulting.id, SessionUpdate(time="14:30", title="Novo título")
        )

        assert updated.title == "Novo título"
        assert updated.scheduled_at.replace(tzinfo=None) == (
            NOW + timedelta(hours=2, minutes=30)
        ).replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_empty_link_clears_it(self, db, make_session):
        consulting = await make_session()

        updated = await update_session(db, consulting.id, SessionUpdate(meeting_link=""))

        assert updated.meeting_link is None

    @pytest.mark.asyncio
    async def test_unknown_session(self, db):
        with pytest.raises(SessionNotFoundError):
            await update_session(db, 404, SessionUpdate(title="x"))


class TestCancelAndDelete:
    @pytest.mark.asyncio
    async def test_cancel_keeps_roster(self, db, make_session):
        consulting = await make_session()
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)

        cancelled = await cancel_session(db, consulting.id)

        assert cancelled.status == SessionStatus.cancelled.value
        assert cancelled.current_participants == 1

    @pytest.mark.asyncio
    async def test_completed_session_cannot_be_cancelled(self, db, make_session):
        consulting = await make_session(status=SessionStatus.completed.value)

        with pytest.raises(BusinessLogicError):
            await cancel_session(db, consulting.id)

    @pytest.mark.asyncio
    async def test_delete_unused_session(self, db, make_session):
        consulting = await make_session()

        await delete_session(db, consulting.id)

        with pytest.raises(SessionNotFoundError):
            await get_session_by_id(db, consulting.id)

    @pytest.mark.asyncio
    async def test_delete_with_ledger_rows_is_rejected(self, db, make_session):
        consulting = await make_session()
        await enroll_in_session(db, consulting.id, "user-1", now=NOW)
        await cancel_enrollment(db, consulting.id, "user-1", now=NOW)

        with pytest.raises(BusinessLogicError):
            await delete_session(db, consulting.id)


class TestListAll:
    @pytest.mark.asyncio
    async def test_newest_first_with_roster(self, db, make_session):
        first = await make_session(scheduled_at=NOW + timedelta(days=1))
        second = await make_session(scheduled_at=NOW + timedelta(days=2))
        await enroll_in_session(db, first.id, "alice", now=NOW)
        await enroll_in_session(db, first.id, "bob", now=NOW + timedelta(seconds=1))

        sessions = await list_all_sessions(db, now=NOW)

        assert [s.id for s in sessions] == [second.id, first.id]
        assert sessions[1].participants == ["alice", "bob"]
        assert sessions[0].participants == []


class TestSweep:
    @pytest.mark.asyncio
    async def test_sweep_persists_completed(self, db, make_session):
        finished = await make_session(scheduled_at=NOW - timedelta(hours=2))
        running = await make_session(scheduled_at=NOW - timedelta(minutes=30))
        cancelled = await make_session(
            scheduled_at=NOW - timedelta(hours=3), status=SessionStatus.cancelled.value
        )

        count, ids = await sweep_completed_sessions(db, now=NOW)

        assert count == 1
        assert ids == [finished.id]
        assert (await get_session_by_id(db, finished.id)).status == SessionStatus.completed.value
        assert (await get_session_by_id(db, running.id)).status == SessionStatus.available.value
        assert (await get_session_by_id(db, cancelled.id)).status == SessionStatus.cancelled.value

    @pytest.mark.asyncio
    async def test_listing_is_the_same_with_or_without_sweep(self, db, make_session):
        await make_session(scheduled_at=NOW - timedelta(hours=2))

        before = await list_past(db, "user-1", now=NOW)
        await sweep_completed_sessions(db, now=NOW)
        after = await list_past(db, "user-1", now=NOW)

        assert [v.model_dump() for v in before] == [v.model_dump() for v in after]

    @pytest.mark.asyncio
    async def test_second_sweep_is_a_noop(self, db, make_session):
        await make_session(scheduled_at=NOW - timedelta(hours=2))

        await sweep_completed_sessions(db, now=NOW)
        count, ids = await sweep_completed_sessions(db, now=NOW)

        assert count == 0
        assert ids == []
