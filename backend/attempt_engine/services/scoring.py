"""
Scoring Service - MCQ answer capture with write-time scoring.

Implements the marking rule for one multiple-choice answer:
1. is_correct = selected option set equals the correct option set exactly
2. points_earned = +points when correct, -negative_points otherwise
3. An empty selection clears the answer: not answered, 0 points

Penalties are not floored at zero, so an attempt's score can go negative.

Answers are upserted per (attempt, assessment_question). Re-answering a
question replaces its previous contribution to the attempt counters
instead of adding to it.
"""

import time
from typing import Iterable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from attempt_engine import clock
from attempt_engine.errors import InvalidAnswer, QuestionNotFound
from attempt_engine.models.answer import AttemptAnswer
from attempt_engine.models.assessment import AssessmentQuestion
from attempt_engine.models.question import QuestionType
from attempt_engine.services.attempt_state import (
    Contribution, NO_CONTRIBUTION, apply_delta, find_active_session,
    lock_attempt, require_writable,
)
from attempt_engine.logging_config import get_logger, log_with_context

# Channel logger for scoring operations
logger = get_logger("scoring")


def score_mcq(selected_ids: Iterable[int], correct_ids: Iterable[int],
              points: float, negative_points: float) -> tuple:
    """
    Score one MCQ selection.

    Returns:
        (is_correct, points_earned)
    """
    selected = set(selected_ids)
    if not selected:
        return False, 0.0
    is_correct = selected == set(correct_ids)
    if is_correct:
        return True, float(points or 0)
    return False, -float(negative_points or 0)


def answer_contribution(answer: Optional[AttemptAnswer]) -> Contribution:
    """What an answer row adds to the attempt counters."""
    if answer is None or not answer.is_answered:
        return NO_CONTRIBUTION
    return Contribution(
        answered=1,
        correct=1 if answer.is_correct else 0,
        wrong=0 if answer.is_correct else 1,
        points=float(answer.points_earned or 0),
    )


def load_assessment_question(db: Session, assessment_id: int,
                             assessment_question_id: int) -> AssessmentQuestion:
    aq = db.query(AssessmentQuestion).filter(
        AssessmentQuestion.id == assessment_question_id,
        AssessmentQuestion.assessment_id == assessment_id,
    ).first()
    if not aq:
        raise QuestionNotFound(details={"assessment_question_id": assessment_question_id})
    return aq


def _validate_selection(question, selected: List[int]):
    if question.question_type not in QuestionType.MCQ_TYPES:
        raise InvalidAnswer("Question {} is not a multiple-choice question".format(question.id))
    valid_ids = {o.id for o in question.options}
    unknown = [i for i in selected if i not in valid_ids]
    if unknown:
        raise InvalidAnswer("Options do not belong to this question",
                            details={"option_ids": unknown})
    if question.question_type != QuestionType.MULTIPLE_CORRECT and len(selected) > 1:
        raise InvalidAnswer("Only one option may be selected for this question")


def _commit(db: Session, context: dict):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to commit answer: {}".format(e), context=context)
        raise


def save_mcq_answer(db: Session, student_id: int, assessment_id: int,
                    assessment_question_id: int, selected_option_ids: Iterable[int],
                    time_taken_seconds: Optional[int] = None) -> dict:
    """
    Autosave an MCQ answer and return its scoring.

    The correct answer set is never returned unless the assessment allows
    showing correct answers.
    """
    start_time = time.time()

    session = find_active_session(db, student_id, assessment_id)
    attempt = lock_attempt(db, session.attempt_id)
    assessment = attempt.assessment
    now = clock.utcnow()
    require_writable(attempt, assessment, now)

    aq = load_assessment_question(db, attempt.assessment_id, assessment_question_id)
    question = aq.question
    selected = sorted({int(i) for i in selected_option_ids})
    _validate_selection(question, selected)

    correct_ids = question.correct_option_ids
    is_correct, points_earned = score_mcq(selected, correct_ids, aq.points, aq.negative_points)

    existing = db.query(AttemptAnswer).filter(
        AttemptAnswer.attempt_id == attempt.id,
        AttemptAnswer.assessment_question_id == aq.id,
    ).first()
    old = answer_contribution(existing)

    if existing:
        answer = existing
    else:
        answer = AttemptAnswer(
            attempt_id=attempt.id,
            assessment_question_id=aq.id,
            question_id=question.id,
        )
        db.add(answer)

    answer.selected_option_ids = selected
    answer.is_correct = is_correct
    answer.points_earned = points_earned
    answer.time_taken_seconds = time_taken_seconds
    answer.answered_at = now if selected else None

    apply_delta(db, attempt.id, old, answer_contribution(answer))
    session.last_heartbeat_at = now

    context = {"attempt_id": attempt.id, "student_id": student_id,
               "assessment_question_id": aq.id}
    _commit(db, context)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "MCQ answer saved (correct={}, points={})".format(is_correct, points_earned),
        context=context,
        extra_data={"duration_ms": round(duration_ms, 2), "replaced": existing is not None})

    result = {
        "assessment_question_id": aq.id,
        "is_correct": is_correct,
        "points_earned": points_earned,
        "max_points": float(aq.points or 0),
    }
    if assessment.show_correct_answers:
        result["correct_option_ids"] = sorted(correct_ids)
    return result


def flag_question(db: Session, student_id: int, assessment_id: int,
                  assessment_question_id: int, is_flagged: bool) -> dict:
    """Mark a question for review. Allowed at any time while a session is live."""
    session = find_active_session(db, student_id, assessment_id)
    lock_attempt(db, session.attempt_id)
    aq = load_assessment_question(db, assessment_id, assessment_question_id)

    answer = db.query(AttemptAnswer).filter(
        AttemptAnswer.attempt_id == session.attempt_id,
        AttemptAnswer.assessment_question_id == aq.id,
    ).first()
    if not answer:
        # Flag-only row: no selection, contributes nothing to the score
        answer = AttemptAnswer(
            attempt_id=session.attempt_id,
            assessment_question_id=aq.id,
            question_id=aq.question_id,
            selected_option_ids=[],
            is_correct=False,
            points_earned=0,
        )
        db.add(answer)
    answer.is_flagged = bool(is_flagged)

    _commit(db, {"attempt_id": session.attempt_id, "assessment_question_id": aq.id})

    log_with_context(logger, "INFO",
        "Question {} {}".format(aq.id, "flagged" if is_flagged else "unflagged"),
        context={"attempt_id": session.attempt_id, "student_id": student_id})
    return {"assessment_question_id": aq.id, "is_flagged": answer.is_flagged}
