"""
Tests for the JSON session store
"""

from datetime import datetime

import pytest

from conftest import make_event
from models.detection_models import DetectionType, SessionCreate, SessionStatus, SessionUpdate
from utils.errors import SessionNotFoundError


def new_session_data(**overrides) -> SessionCreate:
    data = {
        "title": "Frontend interview",
        "interviewer_name": "Dana Reviewer",
        "candidate_name": "Sam Candidate",
        "scheduled_at": datetime(2024, 5, 1, 10, 0, 0),
        "duration": 30,
    }
    data.update(overrides)
    return SessionCreate(**data)


class TestSessions:

    async def test_create_and_get(self, store):
        created = await store.create_session(new_session_data())
        loaded = await store.get_session(created.session_id)

        assert loaded is not None
        assert loaded.session_id == created.session_id
        assert loaded.status == SessionStatus.SCHEDULED
        assert loaded.integrity_score == 100
        assert loaded.detection_events == []

    async def test_missing_session(self, store):
        assert await store.get_session("missing") is None

        with pytest.raises(SessionNotFoundError):
            await store.require_session("missing")

    async def test_list_newest_first(self, store):
        await store.create_session(new_session_data(title="early", scheduled_at=datetime(2024, 1, 1)))
        await store.create_session(new_session_data(title="late", scheduled_at=datetime(2024, 6, 1)))

        sessions = await store.list_sessions()

        assert [s.title for s in sessions] == ["late", "early"]


class TestUpdateAndDelete:

    async def test_update_metadata_and_status(self, store):
        session = await store.create_session(new_session_data())

        updated = await store.update_session(session.session_id, SessionUpdate(
            title="Rescheduled interview",
            status=SessionStatus.CANCELLED,
        ))
        loaded = await store.get_session(session.session_id)

        assert updated.title == loaded.title == "Rescheduled interview"
        assert loaded.status == SessionStatus.CANCELLED
        # Fields that were not sent keep their values
        assert loaded.candidate_name == "Sam Candidate"
        assert loaded.duration == 30

    async def test_update_keeps_event_log_and_score(self, store):
        session = await store.create_session(new_session_data())
        await store.append_events(session.session_id, [make_event(DetectionType.PHONE_DETECTED)])

        updated = await store.update_session(session.session_id, SessionUpdate(duration=90))

        assert updated.duration == 90
        assert [e.type for e in updated.detection_events] == [DetectionType.PHONE_DETECTED]
        assert updated.integrity_score == 85

    async def test_update_missing_session(self, store):
        with pytest.raises(SessionNotFoundError):
            await store.update_session("missing", SessionUpdate(title="x"))

    async def test_delete_removes_session_and_report(self, store):
        session = await store.create_session(new_session_data())
        await store.create_report(session.session_id)

        await store.delete_session(session.session_id)

        assert await store.get_session(session.session_id) is None
        assert await store.get_report(session.session_id) is None
        assert await store.list_sessions() == []

    async def test_delete_missing_session(self, store):
        with pytest.raises(SessionNotFoundError):
            await store.delete_session("missing")


class TestAppendEvents:

    async def test_append_persists_log_and_score(self, store):
        session = await store.create_session(new_session_data())

        await store.append_events(session.session_id, [
            make_event(DetectionType.FOCUS_LOST),
            make_event(DetectionType.PHONE_DETECTED),
        ])
        loaded = await store.get_session(session.session_id)

        assert [e.type for e in loaded.detection_events] == [
            DetectionType.FOCUS_LOST,
            DetectionType.PHONE_DETECTED,
        ]
        assert loaded.integrity_score == 83

    async def test_append_nothing_keeps_score(self, store):
        session = await store.create_session(new_session_data())

        updated = await store.append_events(session.session_id, [])

        assert updated.integrity_score == 100
        assert updated.detection_events == []

    async def test_append_to_missing_session(self, store):
        with pytest.raises(SessionNotFoundError):
            await store.append_events("missing", [make_event(DetectionType.FOCUS_LOST)])


class TestReports:

    async def test_create_once(self, store):
        session = await store.create_session(new_session_data())
        await store.append_events(session.session_id, [make_event(DetectionType.PHONE_DETECTED)])

        first, created = await store.create_report(session.session_id)
        assert created is True
        assert first.integrity_score == 85

        # Later events do not change an existing report
        await store.append_events(session.session_id, [make_event(DetectionType.NOTES_DETECTED)])
        second, created = await store.create_report(session.session_id)

        assert created is False
        assert second == first

    async def test_report_matches_session_score(self, store):
        session = await store.create_session(new_session_data())
        updated = await store.append_events(session.session_id, [
            make_event(DetectionType.FACE_ABSENT),
            make_event(DetectionType.MULTIPLE_FACES),
        ])

        report, _ = await store.create_report(session.session_id)

        assert report.integrity_score == updated.integrity_score == 85
        assert await store.get_report(session.session_id) == report

    async def test_report_for_missing_session(self, store):
        with pytest.raises(SessionNotFoundError):
            await store.create_report("missing")

        assert await store.get_report("missing") is None

    async def test_list_reports(self, store):
        a = await store.create_session(new_session_data())
        b = await store.create_session(new_session_data())
        await store.create_report(a.session_id)
        await store.create_report(b.session_id)

        reports = await store.list_reports()

        assert {r.session_id for r in reports} == {a.session_id, b.session_id}
