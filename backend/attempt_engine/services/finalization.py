"""
Finalization Service - the single authoritative scoring of an attempt.

submit() is idempotent: once an attempt is evaluated (or expired) every
further call returns the stored summary without recomputing anything.
Otherwise the score is recomputed from the persisted answer and final
coding submission rows, never from the running counters:

    score_obtained = sum(answer.points_earned) + sum(final submission.points_earned)
    total_score    = sum(points of every question in the assessment)
    percentage     = score_obtained / total_score * 100   (0 when total is 0)

Concurrent submits for the same attempt serialize on the attempt row
lock; the second one sees the evaluated status and returns the summary.
"""

import time
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from attempt_engine import clock
from attempt_engine.errors import AttemptNotActive
from attempt_engine.models.answer import AttemptAnswer
from attempt_engine.models.assessment import Assessment, AssessmentQuestion
from attempt_engine.models.attempt import Attempt, AttemptStatus
from attempt_engine.models.coding_submission import CodingSubmission
from attempt_engine.services.attempt_state import (
    deactivate_sessions, elapsed_minutes, elapsed_seconds, is_overdue,
    latest_attempt, lock_attempt, transition,
)
from attempt_engine.logging_config import get_logger, log_with_context

logger = get_logger("finalize")


def _question_totals(db: Session, assessment_id: int) -> tuple:
    count, points = db.query(
        func.count(AssessmentQuestion.id),
        func.coalesce(func.sum(AssessmentQuestion.points), 0),
    ).filter(AssessmentQuestion.assessment_id == assessment_id).one()
    return int(count), float(points)


def _answered_rows(db: Session, attempt_id: int) -> tuple:
    answers = [
        a for a in db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id == attempt_id).all()
        if a.is_answered
    ]
    finals = db.query(CodingSubmission).filter(
        CodingSubmission.attempt_id == attempt_id,
        CodingSubmission.is_final_submission.is_(True),
    ).all()
    return answers, finals


def aggregate(db: Session, attempt: Attempt, assessment: Assessment, now):
    """Recompute every score field and counter of the attempt from its rows."""
    answers, finals = _answered_rows(db, attempt.id)
    total_questions, total_score = _question_totals(db, assessment.id)

    score = sum(float(a.points_earned or 0) for a in answers) + \
        sum(float(s.points_earned or 0) for s in finals)
    answered = {a.assessment_question_id for a in answers} | \
        {s.assessment_question_id for s in finals}
    correct = sum(1 for a in answers if a.is_correct) + \
        sum(1 for s in finals if s.tests_total and s.tests_passed == s.tests_total)

    attempt.total_questions = total_questions
    attempt.answered_questions = len(answered)
    attempt.correct_answers = correct
    attempt.wrong_answers = len(answered) - correct
    attempt.skipped_questions = max(total_questions - len(answered), 0)
    attempt.score_obtained = score
    attempt.total_score = total_score
    attempt.percentage = round(score / total_score * 100, 2) if total_score > 0 else 0.0
    attempt.time_taken_seconds = elapsed_seconds(attempt, assessment, now)


def summary(attempt: Attempt, already_finalized: bool = False) -> dict:
    seconds = attempt.time_taken_seconds or 0
    return {
        "attempt_id": attempt.id,
        "status": attempt.status,
        "score_obtained": float(attempt.score_obtained or 0),
        "total_score": float(attempt.total_score or 0),
        "percentage": float(attempt.percentage or 0),
        "time_taken_seconds": seconds,
        "time_taken_minutes": elapsed_minutes(seconds),
        "attended": attempt.answered_questions,
        "unanswered": max((attempt.total_questions or 0) - (attempt.answered_questions or 0), 0),
        "submitted_at": attempt.submitted_at.isoformat() if attempt.submitted_at else None,
        "already_finalized": already_finalized,
    }


def _commit(db: Session, attempt_id: int):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to commit finalization: {}".format(e),
                         context={"attempt_id": attempt_id})
        raise


def submit(db: Session, student_id: int, assessment_id: int) -> dict:
    """
    Finalize the caller's latest attempt at the assessment.

    The attempt is looked up by the caller's own student id on every call,
    so a repeated submit never exposes someone else's attempt.
    """
    start_time = time.time()

    attempt = latest_attempt(db, student_id, assessment_id)
    if not attempt:
        raise AttemptNotActive("No attempt to submit", details={"assessment_id": assessment_id})

    attempt = lock_attempt(db, attempt.id)
    if attempt.is_finalized:
        db.rollback()
        log_with_context(logger, "INFO", "Submit repeated on finalized attempt",
                         context={"attempt_id": attempt.id, "student_id": student_id})
        return summary(attempt, already_finalized=True)

    if attempt.status == AttemptStatus.NOT_STARTED:
        raise AttemptNotActive("Attempt has not been started",
                               details={"attempt_id": attempt.id, "status": attempt.status})

    now = clock.utcnow()
    if attempt.status == AttemptStatus.IN_PROGRESS:
        transition(attempt, AttemptStatus.SUBMITTED)
    aggregate(db, attempt, attempt.assessment, now)
    transition(attempt, AttemptStatus.EVALUATED)
    attempt.submitted_at = now
    deactivate_sessions(db, attempt.id, now)
    _commit(db, attempt.id)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Attempt evaluated: {} / {} ({}%)".format(
            attempt.score_obtained, attempt.total_score, attempt.percentage),
        context={"attempt_id": attempt.id, "student_id": student_id,
                 "assessment_id": assessment_id},
        extra_data={"duration_ms": round(duration_ms, 2),
                    "time_taken_seconds": attempt.time_taken_seconds})

    return summary(attempt)


def get_submit_preview(db: Session, student_id: int, assessment_id: int) -> dict:
    """Attended/unanswered/elapsed figures for the submit dialog. Read-only."""
    attempt = latest_attempt(db, student_id, assessment_id)
    if not attempt:
        raise AttemptNotActive("No attempt found", details={"assessment_id": assessment_id})

    assessment = attempt.assessment
    answers, finals = _answered_rows(db, attempt.id)
    total_questions, _ = _question_totals(db, assessment.id)
    attended = len({a.assessment_question_id for a in answers} |
                   {s.assessment_question_id for s in finals})
    flagged = db.query(func.count(AttemptAnswer.id)).filter(
        AttemptAnswer.attempt_id == attempt.id,
        AttemptAnswer.is_flagged.is_(True),
    ).scalar()

    if attempt.is_finalized:
        seconds = attempt.time_taken_seconds or 0
    else:
        seconds = elapsed_seconds(attempt, assessment, clock.utcnow())

    return {
        "attempt_id": attempt.id,
        "status": attempt.status,
        "total_questions": total_questions,
        "attended": attended,
        "unanswered": max(total_questions - attended, 0),
        "flagged": flagged or 0,
        "time_taken_seconds": seconds,
        "time_taken_minutes": elapsed_minutes(seconds),
    }


def expire_overdue_attempts(db: Session, now: Optional[object] = None) -> dict:
    """
    Time-based sweep over unfinished attempts whose time is up.

    In-progress attempts of auto-submit assessments are finalized as if
    the student had submitted; everything else overdue becomes expired,
    with its score fields still computed from its rows.
    """
    now = now or clock.utcnow()
    counts = {"evaluated": 0, "expired": 0}

    candidates = db.query(Attempt).filter(
        Attempt.status.in_(AttemptStatus.NON_TERMINAL)
    ).all()

    for candidate in candidates:
        assessment = candidate.assessment
        # Late autosaves inside the grace period still count
        if not is_overdue(candidate, assessment, now):
            continue

        attempt = lock_attempt(db, candidate.id)
        if attempt.status not in AttemptStatus.NON_TERMINAL:
            db.rollback()
            continue

        if attempt.status == AttemptStatus.IN_PROGRESS and assessment.auto_submit:
            transition(attempt, AttemptStatus.SUBMITTED)
            aggregate(db, attempt, assessment, now)
            transition(attempt, AttemptStatus.EVALUATED)
            attempt.submitted_at = now
            counts["evaluated"] += 1
        else:
            aggregate(db, attempt, assessment, now)
            transition(attempt, AttemptStatus.EXPIRED)
            counts["expired"] += 1

        deactivate_sessions(db, attempt.id, now)
        _commit(db, attempt.id)

    log_with_context(logger, "INFO",
        "Expiry sweep finished: {} evaluated, {} expired".format(counts["evaluated"], counts["expired"]),
        extra_data={"candidates": len(candidates)})
    return counts
