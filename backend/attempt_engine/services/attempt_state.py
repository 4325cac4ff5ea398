"""
Attempt State Machine - lifecycle transitions and aggregate counters.

Allowed transitions (one-directional):
    not_started -> in_progress | expired
    in_progress -> submitted   | expired
    submitted   -> evaluated
evaluated and expired are terminal.

Aggregate counters are adjusted with SQL increments by the difference
between a question's old and new contribution, inside the same
transaction that writes the answer row. Every read-modify-write on an
attempt starts by locking the attempt row (SELECT ... FOR UPDATE), which
serializes concurrent writers for the same attempt on PostgreSQL.
"""

import math
import os
from datetime import timedelta
from typing import NamedTuple, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session

from attempt_engine.errors import AttemptNotActive, WindowClosed, SessionNotFound
from attempt_engine.models.attempt import Attempt, AttemptStatus
from attempt_engine.models.session import AssessmentSession
from attempt_engine.logging_config import get_logger, log_with_context

logger = get_logger("db")

# Late autosaves arriving just after the deadline are still accepted
ANSWER_GRACE_SECONDS = int(os.getenv("ANSWER_GRACE_SECONDS", "30"))

TRANSITIONS = {
    AttemptStatus.NOT_STARTED: {AttemptStatus.IN_PROGRESS, AttemptStatus.EXPIRED},
    AttemptStatus.IN_PROGRESS: {AttemptStatus.SUBMITTED, AttemptStatus.EXPIRED},
    AttemptStatus.SUBMITTED: {AttemptStatus.EVALUATED},
    AttemptStatus.EVALUATED: set(),
    AttemptStatus.EXPIRED: set(),
}


def transition(attempt: Attempt, to_status: str):
    """Move an attempt to a new status, refusing anything not in TRANSITIONS."""
    if to_status not in TRANSITIONS.get(attempt.status, set()):
        raise AttemptNotActive(
            "Cannot move attempt from {} to {}".format(attempt.status, to_status),
            details={"attempt_id": attempt.id, "status": attempt.status},
        )
    log_with_context(logger, "INFO",
        "Attempt {} -> {}".format(attempt.status, to_status),
        context={"attempt_id": attempt.id, "student_id": attempt.student_id,
                 "assessment_id": attempt.assessment_id})
    attempt.status = to_status


def lock_attempt(db: Session, attempt_id: int) -> Attempt:
    """Re-read an attempt row under a row lock for the rest of the transaction."""
    return (
        db.query(Attempt)
        .filter(Attempt.id == attempt_id)
        .with_for_update()
        .populate_existing()
        .one()
    )


def latest_attempt(db: Session, student_id: int, assessment_id: int) -> Optional[Attempt]:
    return (
        db.query(Attempt)
        .filter(Attempt.student_id == student_id, Attempt.assessment_id == assessment_id)
        .order_by(Attempt.attempt_number.desc())
        .first()
    )


def find_active_session(db: Session, student_id: int, assessment_id: int) -> AssessmentSession:
    session = (
        db.query(AssessmentSession)
        .filter(
            AssessmentSession.student_id == student_id,
            AssessmentSession.assessment_id == assessment_id,
            AssessmentSession.is_active.is_(True),
        )
        .order_by(AssessmentSession.id.desc())
        .first()
    )
    if not session:
        # Finalization closes the sessions; report the attempt state instead
        attempt = latest_attempt(db, student_id, assessment_id)
        if attempt is not None and attempt.status not in AttemptStatus.NON_TERMINAL:
            raise AttemptNotActive(details={"attempt_id": attempt.id, "status": attempt.status})
        raise SessionNotFound(details={"assessment_id": assessment_id})
    return session


def find_session_by_token(db: Session, session_token: str) -> AssessmentSession:
    session = (
        db.query(AssessmentSession)
        .filter(AssessmentSession.session_token == session_token,
                AssessmentSession.is_active.is_(True))
        .first()
    )
    if not session:
        raise SessionNotFound()
    return session


def deactivate_sessions(db: Session, attempt_id: int, now):
    """Close every active session of an attempt."""
    db.execute(
        update(AssessmentSession)
        .where(AssessmentSession.attempt_id == attempt_id,
               AssessmentSession.is_active.is_(True))
        .values(is_active=False, ended_at=now)
        .execution_options(synchronize_session="fetch")
    )


def answer_deadline(attempt: Attempt, assessment):
    """Latest moment answers count: window end or started_at + duration, whichever is first."""
    candidates = []
    if assessment.end_time:
        candidates.append(assessment.end_time)
    if attempt.started_at and assessment.duration_minutes:
        candidates.append(attempt.started_at + timedelta(minutes=assessment.duration_minutes))
    return min(candidates) if candidates else None


def is_overdue(attempt: Attempt, assessment, now) -> bool:
    """True once the deadline plus the autosave grace has passed."""
    deadline = answer_deadline(attempt, assessment)
    return deadline is not None and now > deadline + timedelta(seconds=ANSWER_GRACE_SECONDS)


def require_writable(attempt: Attempt, assessment, now):
    """Answers and submissions are only accepted while the attempt is in progress."""
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise AttemptNotActive(details={"attempt_id": attempt.id, "status": attempt.status})
    if is_overdue(attempt, assessment, now):
        deadline = answer_deadline(attempt, assessment)
        raise WindowClosed("Time is up for this attempt",
                           details={"attempt_id": attempt.id, "deadline": deadline.isoformat()})


def elapsed_seconds(attempt: Attempt, assessment, now) -> int:
    """
    Seconds spent on the attempt, measured up to now or the window end,
    whichever comes first, and clamped to the assessment duration.
    """
    if not attempt.started_at:
        return 0
    effective_end = now
    if assessment.end_time and assessment.end_time < effective_end:
        effective_end = assessment.end_time
    raw = max((effective_end - attempt.started_at).total_seconds(), 0)
    if assessment.duration_minutes:
        raw = min(raw, assessment.duration_minutes * 60)
    return int(raw)


def elapsed_minutes(seconds: int) -> int:
    return math.ceil(seconds / 60) if seconds else 0


class Contribution(NamedTuple):
    """What one question adds to the attempt counters."""
    answered: int = 0
    correct: int = 0
    wrong: int = 0
    points: float = 0.0


NO_CONTRIBUTION = Contribution()


def apply_delta(db: Session, attempt_id: int, old: Contribution, new: Contribution):
    """
    Replace a question's old contribution with its new one using SQL
    increments, so the counters never depend on a stale in-memory copy.
    """
    if old == new:
        return
    db.execute(
        update(Attempt)
        .where(Attempt.id == attempt_id)
        .values(
            answered_questions=Attempt.answered_questions + (new.answered - old.answered),
            correct_answers=Attempt.correct_answers + (new.correct - old.correct),
            wrong_answers=Attempt.wrong_answers + (new.wrong - old.wrong),
            score_obtained=Attempt.score_obtained + (new.points - old.points),
        )
        .execution_options(synchronize_session=False)
    )
