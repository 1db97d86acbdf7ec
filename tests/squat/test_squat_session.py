"""
Tests for the session manager: per-session analyzers and the frame boundary.
"""

import json

import pytest

from squat_service.models import (
    Feedback,
    SessionLimitError,
    SessionNotFoundError,
    SquatSessionManager,
)
from squat_service.models import squat_session


@pytest.fixture
def manager():
    return SquatSessionManager(max_sessions=3, clock=lambda: 100.0)


class TestSessions:

    def test_create_and_get(self, manager):
        session = manager.create_session("user-1")

        assert manager.get_session(session.session_id) is session
        assert session.user_id == "user-1"
        assert manager.session_count == 1

    def test_unknown_session(self, manager):
        with pytest.raises(SessionNotFoundError):
            manager.get_session("missing")

        with pytest.raises(KeyError):
            manager.process_frame("missing", None)

    def test_zero_session_limit_is_respected(self):
        manager = SquatSessionManager(max_sessions=0)

        assert manager.max_sessions == 0
        with pytest.raises(SessionLimitError):
            manager.create_session("user-1")

    def test_session_limit(self, manager):
        for i in range(3):
            manager.create_session(f"user-{i}")

        with pytest.raises(SessionLimitError):
            manager.create_session("one-too-many")

    def test_cleanup(self, manager):
        session = manager.create_session("user-1")

        assert manager.cleanup_session(session.session_id) is True
        assert manager.cleanup_session(session.session_id) is False
        assert manager.session_count == 0

    def test_sessions_are_independent(self, manager, make_payload):
        a = manager.create_session("a")
        b = manager.create_session("b")

        for knee, t in [(170, 0.0), (60, 1.0), (170, 2.0)]:
            manager.process_frame(a.session_id, make_payload(knee), timestamp=t)

        assert manager.get_session(a.session_id).analyzer.state.rep_count == 1
        assert manager.get_session(b.session_id).analyzer.state.rep_count == 0
        assert manager.get_stats()["total_reps"] == 1


class TestProcessFrame:

    def test_counts_rep_from_payloads(self, manager, make_payload):
        session = manager.create_session("user-1")

        snapshot = None
        for knee, t in [(170, 0.0), (170, 0.1), (60, 0.2), (60, 0.3), (170, 1.5)]:
            snapshot = manager.process_frame(session.session_id, make_payload(knee), timestamp=t)

        assert snapshot.rep_count == 1
        assert session.frames_processed == 5
        assert session.last_frame_at == 1.5

    def test_json_string_payload(self, manager, make_payload):
        session = manager.create_session("user-1")
        snapshot = manager.process_frame(session.session_id, json.dumps(make_payload(60)))
        assert snapshot.feedback == Feedback.KNEE_BENT_EXCESSIVELY

    def test_uses_manager_clock(self, manager, make_payload):
        session = manager.create_session("user-1")
        manager.process_frame(session.session_id, make_payload(170))
        manager.process_frame(session.session_id, make_payload(60))
        assert session.analyzer.state.last_rep_timestamp == 100.0

    def test_none_payload_is_waiting(self, manager):
        session = manager.create_session("user-1")
        assert manager.process_frame(session.session_id, None).feedback == Feedback.WAITING

    def test_bad_payload_is_analysis_error(self, manager, make_payload):
        session = manager.create_session("user-1")
        manager.process_frame(session.session_id, make_payload(170), timestamp=0.0)

        snapshot = manager.process_frame(session.session_id, {"not": "a frame"}, timestamp=1.0)

        assert snapshot.feedback == Feedback.ANALYSIS_ERROR
        assert session.analyzer.state.previous_knee_angle == pytest.approx(170)

    @pytest.mark.parametrize("bad_entry", [
        {"x": 10 ** 400, "y": 0.0},
        {"x": float("nan"), "y": 0.5},
    ])
    def test_unconvertible_coordinates_are_analysis_error(self, manager, make_payload, bad_entry):
        session = manager.create_session("user-1")
        manager.process_frame(session.session_id, make_payload(170), timestamp=0.0)

        payload = make_payload(60)
        payload[0] = bad_entry
        snapshot = manager.process_frame(session.session_id, payload, timestamp=1.0)

        assert snapshot.feedback == Feedback.ANALYSIS_ERROR
        assert session.analyzer.state.previous_knee_angle == pytest.approx(170)
        assert session.frames_processed == 2

    def test_unexpected_parse_failure_is_analysis_error(self, manager, monkeypatch):
        def explode(payload):
            raise RuntimeError("decoder blew up")

        monkeypatch.setattr(squat_session, "parse_landmark_frame", explode)
        session = manager.create_session("user-1")

        snapshot = manager.process_frame(session.session_id, [])
        assert snapshot.feedback == Feedback.ANALYSIS_ERROR

    def test_bad_payload_while_stopped(self, manager):
        session = manager.create_session("user-1")
        manager.toggle(session.session_id)
        assert manager.process_frame(session.session_id, "garbage").feedback == Feedback.STOPPED

    def test_toggle_and_reset(self, manager, make_payload):
        session = manager.create_session("user-1")
        for knee, t in [(170, 0.0), (60, 1.0), (170, 2.0)]:
            manager.process_frame(session.session_id, make_payload(knee), timestamp=t)

        assert manager.toggle(session.session_id).feedback == Feedback.STOPPED

        snapshot = manager.reset(session.session_id)
        assert snapshot.rep_count == 0
        assert snapshot.is_analyzing is False

    def test_status(self, manager):
        session = manager.create_session("user-1")
        status = manager.get_session_status(session.session_id)

        assert status["session_id"] == session.session_id
        assert status["user_id"] == "user-1"
        assert status["rep_count"] == 0
        assert status["feedback"] == "waiting"
        assert status["frames_processed"] == 0
