from datetime import timedelta

import pytest

from attempt_engine import clock
from attempt_engine.errors import (
    AttemptNotActive, DeviceCheckIncomplete, InvalidAnswer, NotEligible, SessionNotFound,
    WindowClosed,
)
from attempt_engine.models import AssessmentSession, Attempt, ProctoringEvent
from attempt_engine.models.assessment import AssessmentPublishStatus
from attempt_engine.services import finalization, readiness

from conftest import OUTSIDER_ID, STUDENT_ID, begin_and_start, create_exam


def active_sessions(db, attempt_id):
    db.expire_all()
    return db.query(AssessmentSession).filter(
        AssessmentSession.attempt_id == attempt_id,
        AssessmentSession.is_active.is_(True),
    ).all()


# ── eligibility ──────────────────────────────────────────────

def test_begin_creates_a_not_started_attempt(db, exam):
    issued = readiness.begin(db, STUDENT_ID, exam.assessment_id, user_agent="pytest")
    assert issued["attempt_status"] == "not_started"
    assert issued["attempt_number"] == 1
    assert issued["camera_required"] is False
    assert issued["microphone_required"] is False
    assert len(issued["session_token"]) >= 32


def test_student_outside_the_audience_is_not_eligible(db, exam):
    with pytest.raises(NotEligible):
        readiness.begin(db, OUTSIDER_ID, exam.assessment_id)
    assert db.query(Attempt).count() == 0


def test_unpublished_assessment_is_not_eligible(db):
    exam = create_exam(db, status=AssessmentPublishStatus.DRAFT)
    with pytest.raises(NotEligible):
        readiness.begin(db, STUDENT_ID, exam.assessment_id)


def test_deleted_assessment_is_not_eligible(db):
    exam = create_exam(db, is_deleted=True)
    with pytest.raises(NotEligible):
        readiness.begin(db, STUDENT_ID, exam.assessment_id)


def test_closed_window_is_not_eligible(db):
    now = clock.utcnow()
    exam = create_exam(db, start_time=now + timedelta(hours=1), end_time=now + timedelta(hours=3))
    with pytest.raises(NotEligible):
        readiness.begin(db, STUDENT_ID, exam.assessment_id)


def test_used_up_attempts_are_not_eligible(db, exam):
    begin_and_start(db, exam.assessment_id)
    finalization.submit(db, STUDENT_ID, exam.assessment_id)
    with pytest.raises(NotEligible):
        readiness.begin(db, STUDENT_ID, exam.assessment_id)


def test_second_attempt_when_allowed(db):
    exam = create_exam(db, max_attempts=2)
    begin_and_start(db, exam.assessment_id)
    finalization.submit(db, STUDENT_ID, exam.assessment_id)

    issued = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    assert issued["attempt_number"] == 2
    assert issued["attempt_status"] == "not_started"


# ── sessions ─────────────────────────────────────────────────

def test_begin_twice_leaves_one_active_session(db, exam):
    first = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    second = readiness.begin(db, STUDENT_ID, exam.assessment_id)

    assert first["attempt_id"] == second["attempt_id"]
    sessions = active_sessions(db, first["attempt_id"])
    assert len(sessions) == 1
    assert sessions[0].session_token == second["session_token"]
    with pytest.raises(SessionNotFound):
        readiness.start(db, first["session_token"])


def test_resume_keeps_the_running_attempt(db, exam):
    issued = begin_and_start(db, exam.assessment_id)
    resumed = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    assert resumed["attempt_id"] == issued["attempt_id"]
    assert resumed["attempt_status"] == "in_progress"
    assert len(active_sessions(db, issued["attempt_id"])) == 1


# ── device checks and start ──────────────────────────────────

def test_start_without_proctoring(db, exam):
    issued = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    started = readiness.start(db, issued["session_token"])
    assert started["status"] == "in_progress"
    assert started["started_at"] is not None

    attempt = db.get(Attempt, issued["attempt_id"])
    db.refresh(attempt)
    assert attempt.total_questions == 3


def test_start_is_idempotent(db, exam):
    issued = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    first = readiness.start(db, issued["session_token"])
    second = readiness.start(db, issued["session_token"])
    assert first["started_at"] == second["started_at"]


def test_proctored_start_waits_for_both_checks(db):
    exam = create_exam(db, proctoring_enabled=True)
    issued = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    token = issued["session_token"]
    assert issued["camera_required"] and issued["microphone_required"]

    with pytest.raises(DeviceCheckIncomplete) as excinfo:
        readiness.start(db, token)
    assert excinfo.value.details["pending"] == ["mic", "camera"]

    readiness.record_device_check(db, token, "mic", "success")
    with pytest.raises(DeviceCheckIncomplete) as excinfo:
        readiness.start(db, token)
    assert excinfo.value.details["pending"] == ["camera"]

    readiness.record_device_check(db, token, "camera", "success")
    assert readiness.start(db, token)["status"] == "in_progress"


def test_webcam_only_assessment_needs_only_the_camera(db):
    exam = create_exam(db, require_webcam=True)
    issued = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    readiness.record_device_check(db, issued["session_token"], "camera", "success")
    assert readiness.start(db, issued["session_token"])["status"] == "in_progress"


def test_failed_check_is_retryable_and_audited(db):
    exam = create_exam(db, require_microphone=True)
    issued = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    token = issued["session_token"]

    result = readiness.record_device_check(db, token, "mic", "failed")
    assert result["retryable"] is True
    assert "Microphone" in result["message"]

    db.expire_all()
    attempt = db.get(Attempt, issued["attempt_id"])
    assert attempt.status == "not_started"
    events = db.query(ProctoringEvent).filter(ProctoringEvent.attempt_id == attempt.id).all()
    assert [e.event_type for e in events] == ["mic_check_failed"]

    result = readiness.record_device_check(db, token, "mic", "success")
    assert result["retryable"] is False
    checks = readiness.get_device_checks(db, token)["device_checks"]
    assert checks["mic"]["status"] == "success"
    assert checks["camera"]["status"] == "not_run"


def test_unknown_device_is_rejected(db, exam):
    issued = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    with pytest.raises(InvalidAnswer):
        readiness.record_device_check(db, issued["session_token"], "keyboard", "success")


def test_start_after_the_window_closed(db, exam, monkeypatch):
    issued = readiness.begin(db, STUDENT_ID, exam.assessment_id)
    later = clock.utcnow() + timedelta(days=2)
    monkeypatch.setattr(clock, "utcnow", lambda: later)
    with pytest.raises(WindowClosed):
        readiness.start(db, issued["session_token"])


def test_start_on_a_finalized_attempt(db, exam):
    issued = begin_and_start(db, exam.assessment_id)
    token = readiness.begin(db, STUDENT_ID, exam.assessment_id)["session_token"]
    finalization.submit(db, STUDENT_ID, exam.assessment_id)
    with pytest.raises(SessionNotFound):
        readiness.start(db, token)
    db.expire_all()
    assert db.get(Attempt, issued["attempt_id"]).status == "evaluated"


# ── proctoring events ────────────────────────────────────────

def test_proctoring_event_is_recorded(db, exam):
    issued = begin_and_start(db, exam.assessment_id)
    result = readiness.record_proctoring_event(
        db, STUDENT_ID, exam.assessment_id, "tab_switch",
        details="left the tab for 12s", image_url="https://blob.example/frame.png")
    assert result["event_type"] == "tab_switch"

    event = db.query(ProctoringEvent).filter(ProctoringEvent.id == result["id"]).one()
    assert event.attempt_id == issued["attempt_id"]
    assert event.image_url == "https://blob.example/frame.png"


def test_proctoring_event_after_submit_is_refused(db, exam):
    begin_and_start(db, exam.assessment_id)
    finalization.submit(db, STUDENT_ID, exam.assessment_id)
    with pytest.raises(AttemptNotActive):
        readiness.record_proctoring_event(db, STUDENT_ID, exam.assessment_id, "tab_switch")
