"""
Readiness Gate - consent, device checks and start of an attempt.

The pre-exam sequence is:
    begin (consent) -> microphone check -> camera check -> start

begin creates or resumes the attempt and always issues a fresh session,
closing the previous one, so a page reload never grants an extra attempt
and never leaves two live sessions. start refuses proctored assessments
until every required device check has passed.
"""

import secrets
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from attempt_engine import clock
from attempt_engine.errors import (
    NotEligible, WindowClosed, DeviceCheckIncomplete, AttemptNotActive, InvalidAnswer,
)
from attempt_engine.models.assessment import Assessment, AssessmentBatch, AssessmentPublishStatus
from attempt_engine.models.assessment import AssessmentQuestion
from attempt_engine.models.audience import BatchStudent
from attempt_engine.models.attempt import Attempt, AttemptStatus
from attempt_engine.models.session import (
    AssessmentSession, ProctoringEvent, CheckStatus, Device,
)
from attempt_engine.services.attempt_state import (
    deactivate_sessions, find_active_session, find_session_by_token, lock_attempt, transition,
)
from attempt_engine.logging_config import get_logger, log_with_context

logger = get_logger("session")


def window_is_open(assessment: Assessment, now) -> bool:
    if assessment.start_time and now < assessment.start_time:
        return False
    if assessment.end_time and now >= assessment.end_time:
        return False
    return True


def is_in_audience(db: Session, student_id: int, assessment_id: int) -> bool:
    """True when the student is an active member of a batch assigned to the assessment."""
    match = (
        db.query(BatchStudent)
        .join(AssessmentBatch, AssessmentBatch.batch_id == BatchStudent.batch_id)
        .filter(
            AssessmentBatch.assessment_id == assessment_id,
            BatchStudent.student_id == student_id,
            BatchStudent.is_active.is_(True),
        )
        .first()
    )
    return match is not None


def check_eligibility(db: Session, student_id: int, assessment_id: int, now) -> Assessment:
    assessment = db.query(Assessment).filter(
        Assessment.id == assessment_id,
        Assessment.is_deleted.is_(False),
        Assessment.status == AssessmentPublishStatus.PUBLISHED,
    ).first()
    if not assessment:
        raise NotEligible("Assessment not accessible", details={"assessment_id": assessment_id})
    if not window_is_open(assessment, now):
        raise NotEligible("Assessment is not open", details={"assessment_id": assessment_id})
    if not is_in_audience(db, student_id, assessment_id):
        raise NotEligible("Student is not assigned to this assessment",
                          details={"assessment_id": assessment_id})
    return assessment


def _open_or_create_attempt(db: Session, student_id: int, assessment: Assessment) -> Attempt:
    current = (
        db.query(Attempt)
        .filter(
            Attempt.student_id == student_id,
            Attempt.assessment_id == assessment.id,
            Attempt.status.in_(AttemptStatus.NON_TERMINAL),
        )
        .order_by(Attempt.attempt_number.desc())
        .first()
    )
    if current:
        return current

    previous = db.query(func.count(Attempt.id), func.max(Attempt.attempt_number)).filter(
        Attempt.student_id == student_id,
        Attempt.assessment_id == assessment.id,
    ).one()
    finished_count, last_number = previous
    if finished_count >= (assessment.max_attempts or 1):
        raise NotEligible("No attempts left for this assessment",
                          details={"max_attempts": assessment.max_attempts})

    attempt = Attempt(
        student_id=student_id,
        assessment_id=assessment.id,
        attempt_number=(last_number or 0) + 1,
        status=AttemptStatus.NOT_STARTED,
    )
    db.add(attempt)
    db.flush()
    return attempt


def begin(db: Session, student_id: int, assessment_id: int,
          user_agent: Optional[str] = None) -> dict:
    """
    Consent step: create or resume the attempt and issue a new session.

    Returns the session token and which device checks the assessment requires.
    """
    now = clock.utcnow()
    assessment = check_eligibility(db, student_id, assessment_id, now)

    try:
        attempt = _open_or_create_attempt(db, student_id, assessment)
    except IntegrityError:
        # A concurrent begin created the same attempt_number first; resume it
        db.rollback()
        attempt = _open_or_create_attempt(db, student_id, assessment)

    attempt = lock_attempt(db, attempt.id)
    deactivate_sessions(db, attempt.id, now)

    session = AssessmentSession(
        attempt_id=attempt.id,
        student_id=student_id,
        assessment_id=assessment.id,
        session_token=secrets.token_urlsafe(32),
        is_active=True,
        user_agent=user_agent,
        started_at=now,
        last_heartbeat_at=now,
    )
    db.add(session)
    db.commit()

    log_with_context(logger, "INFO", "Session issued",
        context={"attempt_id": attempt.id, "student_id": student_id,
                 "assessment_id": assessment.id, "session_id": session.id},
        extra_data={"attempt_number": attempt.attempt_number, "attempt_status": attempt.status})

    return {
        "session_token": session.session_token,
        "attempt_id": attempt.id,
        "attempt_number": attempt.attempt_number,
        "attempt_status": attempt.status,
        "camera_required": assessment.camera_required,
        "microphone_required": assessment.microphone_required,
        "duration_minutes": assessment.duration_minutes,
    }


def get_device_checks(db: Session, session_token: str) -> dict:
    session = find_session_by_token(db, session_token)
    assessment = session.attempt.assessment
    return {
        "device_checks": session.device_checks.model_dump(),
        "camera_required": assessment.camera_required,
        "microphone_required": assessment.microphone_required,
    }


def record_device_check(db: Session, session_token: str, device: str, outcome: str) -> dict:
    """
    Store the outcome of a microphone or camera check.

    A failure is recorded as a proctoring event and may be retried; it never
    changes the attempt status.
    """
    if device not in Device.ALL:
        raise InvalidAnswer("Unknown device: {}".format(device))
    if outcome not in (CheckStatus.SUCCESS, CheckStatus.FAILED):
        raise InvalidAnswer("Unknown device check outcome: {}".format(outcome))

    session = find_session_by_token(db, session_token)
    now = clock.utcnow()
    session.set_device_check(device, outcome, now)
    session.last_heartbeat_at = now

    if outcome == CheckStatus.FAILED:
        db.add(ProctoringEvent(
            attempt_id=session.attempt_id,
            session_id=session.id,
            event_type="{}_check_failed".format(device),
            created_at=now,
        ))
    db.commit()

    log_with_context(logger, "INFO" if outcome == CheckStatus.SUCCESS else "WARNING",
        "Device check {}: {}".format(device, outcome),
        context={"attempt_id": session.attempt_id, "session_id": session.id})

    failed = outcome == CheckStatus.FAILED
    return {
        "device": device,
        "status": outcome,
        "checked_at": now.isoformat(),
        "retryable": failed,
        "message": "{} check failed, please check your device and try again".format(
            "Microphone" if device == Device.MIC else "Camera") if failed else "Check passed",
    }


def start(db: Session, session_token: str) -> dict:
    """
    Start the attempt once the window is open and device checks have passed.

    Idempotent while the attempt is already in progress.
    """
    session = find_session_by_token(db, session_token)
    attempt = lock_attempt(db, session.attempt_id)
    assessment = attempt.assessment
    now = clock.utcnow()

    if attempt.status not in AttemptStatus.NON_TERMINAL:
        raise AttemptNotActive(details={"attempt_id": attempt.id, "status": attempt.status})
    if not window_is_open(assessment, now):
        raise WindowClosed(details={"assessment_id": assessment.id})

    checks = session.device_checks
    missing = []
    if assessment.microphone_required and not checks.mic.passed:
        missing.append(Device.MIC)
    if assessment.camera_required and not checks.camera.passed:
        missing.append(Device.CAMERA)
    if missing:
        raise DeviceCheckIncomplete(details={"pending": missing})

    if attempt.status == AttemptStatus.NOT_STARTED:
        transition(attempt, AttemptStatus.IN_PROGRESS)
        attempt.started_at = now
        attempt.total_questions = db.query(AssessmentQuestion).filter(
            AssessmentQuestion.assessment_id == assessment.id
        ).count()
    session.last_heartbeat_at = now
    db.commit()

    log_with_context(logger, "INFO", "Attempt started",
        context={"attempt_id": attempt.id, "session_id": session.id})

    return {
        "attempt_id": attempt.id,
        "status": attempt.status,
        "started_at": attempt.started_at.isoformat() if attempt.started_at else None,
        "duration_minutes": assessment.duration_minutes,
        "end_time": assessment.end_time.isoformat() if assessment.end_time else None,
    }


def record_proctoring_event(db: Session, student_id: int, assessment_id: int,
                            event_type: str, details: Optional[str] = None,
                            video_url: Optional[str] = None,
                            image_url: Optional[str] = None) -> dict:
    """Audit a proctoring incident reported by the client; evidence stays in blob storage."""
    session = find_active_session(db, student_id, assessment_id)
    event = ProctoringEvent(
        attempt_id=session.attempt_id,
        session_id=session.id,
        event_type=event_type,
        details=details,
        video_url=video_url,
        image_url=image_url,
        created_at=clock.utcnow(),
    )
    db.add(event)
    db.commit()

    log_with_context(logger, "WARNING", "Proctoring event: {}".format(event_type),
        context={"attempt_id": session.attempt_id, "session_id": session.id})
    return {"id": event.id, "event_type": event.event_type}
