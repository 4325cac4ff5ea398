"""
Coding Service - trial runs and final submissions for coding questions.

Two entry points share one Executor:
- try_run: runs at most two sample test cases; feedback only, never scored
- final_submit: runs the full test set and stores the one final
  submission that counts, worth points * passed / total

The judge runs outside the attempt row lock; the lock is taken only to
write the submission and adjust the counters. If the attempt was
finalized while the judge was running, the write is refused.
"""

import time
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from attempt_engine import clock
from attempt_engine.errors import InvalidAnswer, UnsupportedLanguage
from attempt_engine.judge.executor import Executor, JUDGE_TIMEOUT_MS
from attempt_engine.judge.harness import (
    JudgeCase, JudgeResult, DEFAULT_ENTRY_FUNCTION, is_supported, normalize_test_cases,
)
from attempt_engine.models.assessment import AssessmentQuestion
from attempt_engine.models.coding_submission import CodingSubmission
from attempt_engine.services.attempt_state import (
    Contribution, NO_CONTRIBUTION, apply_delta, find_active_session,
    lock_attempt, require_writable,
)
from attempt_engine.services.scoring import load_assessment_question
from attempt_engine.logging_config import get_logger, log_with_context

logger = get_logger("judge")

MAX_SAMPLE_RUNS = 2


def try_run(executor: Executor, language: str, source_code: str,
            sample_test_cases: List, entry: str = DEFAULT_ENTRY_FUNCTION,
            timeout_ms: int = JUDGE_TIMEOUT_MS) -> JudgeResult:
    """Run code against the first sample test cases. Not scored, nothing stored."""
    if not is_supported(language):
        raise UnsupportedLanguage("Unsupported language: {}".format(language))
    tests = normalize_test_cases(sample_test_cases)[:MAX_SAMPLE_RUNS]
    return executor.run(language, source_code, tests, timeout_ms=timeout_ms, entry=entry)


def coding_points(points: float, passed: int, total: int) -> float:
    """Proportional credit; a question without test cases earns nothing."""
    if not total:
        return 0.0
    return float(points or 0) * passed / total


def submission_contribution(submission: Optional[CodingSubmission]) -> Contribution:
    if submission is None:
        return NO_CONTRIBUTION
    accepted = submission.tests_total > 0 and submission.tests_passed == submission.tests_total
    return Contribution(
        answered=1,
        correct=1 if accepted else 0,
        wrong=0 if accepted else 1,
        points=float(submission.points_earned or 0),
    )


def _coding_question(aq: AssessmentQuestion, language: str):
    question = aq.question
    if not question.is_coding:
        raise InvalidAnswer("Question {} is not a coding question".format(question.id))
    supported = question.meta.get("supported_languages")
    if not is_supported(language) or (supported and language not in supported):
        raise UnsupportedLanguage("Unsupported language: {}".format(language),
                                  details={"supported_languages": supported or []})
    return question


def _entry_function(question) -> str:
    return question.meta.get("entry_function") or DEFAULT_ENTRY_FUNCTION


def _full_test_set(question) -> List[JudgeCase]:
    meta = question.meta
    return normalize_test_cases(meta.get("test_cases") or meta.get("sample_test_cases") or [])


def _commit(db: Session, context: dict):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to commit coding submission: {}".format(e),
                         context=context)
        raise


def _result_payload(result: JudgeResult, include_cases: bool) -> dict:
    payload = {
        "status": result.status,
        "passed": result.passed,
        "total": result.total,
        "error": result.error,
    }
    if include_cases:
        payload["outputs"] = result.outputs
        payload["cases"] = [c.model_dump() for c in result.cases]
    return payload


def run_coding(db: Session, executor: Executor, student_id: int, assessment_id: int,
               assessment_question_id: int, language: str, source_code: str) -> dict:
    """
    Trial run against the question's sample test cases.

    The code is kept as a non-final submission so the editor can restore
    it, but it never counts toward the score.
    """
    session = find_active_session(db, student_id, assessment_id)
    attempt = session.attempt
    require_writable(attempt, attempt.assessment, clock.utcnow())

    aq = load_assessment_question(db, attempt.assessment_id, assessment_question_id)
    question = _coding_question(aq, language)

    result = try_run(executor, language, source_code,
                     question.meta.get("sample_test_cases") or [],
                     entry=_entry_function(question))

    db.add(CodingSubmission(
        attempt_id=attempt.id,
        assessment_question_id=aq.id,
        question_id=question.id,
        student_id=student_id,
        language=language,
        source_code=source_code,
        status=result.status,
        tests_passed=result.passed,
        tests_total=result.total,
        points_earned=0,
        max_points=float(aq.points or 0),
        outputs=result.outputs,
        error=result.error,
        is_final_submission=False,
        submitted_at=clock.utcnow(),
    ))
    _commit(db, {"attempt_id": attempt.id, "assessment_question_id": aq.id})

    log_with_context(logger, "INFO",
        "Trial run: {} ({}/{})".format(result.status, result.passed, result.total),
        context={"attempt_id": attempt.id, "student_id": student_id,
                 "assessment_question_id": aq.id},
        extra_data={"language": language})
    return _result_payload(result, include_cases=True)


def final_submit(db: Session, executor: Executor, student_id: int, assessment_id: int,
                 assessment_question_id: int, language: str, source_code: str) -> dict:
    """
    Judge the code against the full test set and store it as the final
    submission for this question, replacing any earlier final submission.
    """
    start_time = time.time()

    session = find_active_session(db, student_id, assessment_id)
    attempt = session.attempt
    require_writable(attempt, attempt.assessment, clock.utcnow())

    aq = load_assessment_question(db, attempt.assessment_id, assessment_question_id)
    question = _coding_question(aq, language)
    tests = _full_test_set(question)

    result = executor.run(language, source_code, tests,
                          timeout_ms=JUDGE_TIMEOUT_MS, entry=_entry_function(question))

    # Lock only after judging; the attempt may have been finalized meanwhile
    attempt = lock_attempt(db, attempt.id)
    now = clock.utcnow()
    require_writable(attempt, attempt.assessment, now)

    existing = db.query(CodingSubmission).filter(
        CodingSubmission.attempt_id == attempt.id,
        CodingSubmission.assessment_question_id == aq.id,
        CodingSubmission.is_final_submission.is_(True),
    ).first()
    old = submission_contribution(existing)

    submission = existing or CodingSubmission(
        attempt_id=attempt.id,
        assessment_question_id=aq.id,
        question_id=question.id,
        student_id=student_id,
        is_final_submission=True,
    )
    if existing is None:
        db.add(submission)

    points_earned = coding_points(aq.points, result.passed, result.total)
    submission.language = language
    submission.source_code = source_code
    submission.status = result.status
    submission.tests_passed = result.passed
    submission.tests_total = result.total
    submission.points_earned = points_earned
    submission.max_points = float(aq.points or 0)
    submission.outputs = result.outputs
    submission.error = result.error
    submission.submitted_at = now

    apply_delta(db, attempt.id, old, submission_contribution(submission))
    session.last_heartbeat_at = now

    context = {"attempt_id": attempt.id, "student_id": student_id,
               "assessment_question_id": aq.id}
    _commit(db, context)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Final submission judged: {} ({}/{}), points={}".format(
            result.status, result.passed, result.total, points_earned),
        context=context,
        extra_data={"language": language, "duration_ms": round(duration_ms, 2),
                    "replaced": existing is not None})

    payload = _result_payload(result, include_cases=False)
    payload.update({
        "submission_id": submission.id,
        "points_earned": points_earned,
        "max_points": float(aq.points or 0),
    })
    return payload
