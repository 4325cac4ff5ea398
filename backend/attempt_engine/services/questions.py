"""
Question delivery for a live attempt.

Questions and options are shuffled per attempt when the assessment asks
for it. The shuffle is seeded with the attempt id, so the same index
always maps to the same question for the whole attempt. MCQ payloads
never carry correctness flags.
"""

import random
from typing import List
from sqlalchemy.orm import Session

from attempt_engine.errors import AttemptNotActive, BacktrackNotAllowed, QuestionNotFound
from attempt_engine.models.answer import AttemptAnswer
from attempt_engine.models.assessment import AssessmentQuestion
from attempt_engine.models.attempt import AttemptStatus
from attempt_engine.models.coding_submission import CodingSubmission
from attempt_engine.services.attempt_state import find_active_session


def ordered_questions(db: Session, attempt) -> List[AssessmentQuestion]:
    questions = (
        db.query(AssessmentQuestion)
        .filter(AssessmentQuestion.assessment_id == attempt.assessment_id)
        .order_by(AssessmentQuestion.sort_order, AssessmentQuestion.id)
        .all()
    )
    if attempt.assessment.shuffle_questions:
        random.Random(attempt.id).shuffle(questions)
    return questions


def _ordered_options(attempt, question) -> list:
    options = list(question.options)
    if attempt.assessment.shuffle_options:
        random.Random("{}:{}".format(attempt.id, question.id)).shuffle(options)
    return options


def get_runtime_config(db: Session, student_id: int, assessment_id: int) -> dict:
    session = find_active_session(db, student_id, assessment_id)
    attempt = session.attempt
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise AttemptNotActive(details={"attempt_id": attempt.id, "status": attempt.status})
    assessment = attempt.assessment
    total = db.query(AssessmentQuestion).filter(
        AssessmentQuestion.assessment_id == assessment.id
    ).count()
    return {
        "attempt_id": attempt.id,
        "duration_minutes": assessment.duration_minutes,
        "allow_backtrack": assessment.allow_backtrack,
        "shuffle_questions": assessment.shuffle_questions,
        "shuffle_options": assessment.shuffle_options,
        "auto_submit": assessment.auto_submit,
        "started_at": attempt.started_at.isoformat() if attempt.started_at else None,
        "end_time": assessment.end_time.isoformat() if assessment.end_time else None,
        "total_questions": total,
    }


def get_question(db: Session, student_id: int, assessment_id: int, index: int) -> dict:
    session = find_active_session(db, student_id, assessment_id)
    attempt = session.attempt
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise AttemptNotActive(details={"attempt_id": attempt.id, "status": attempt.status})

    questions = ordered_questions(db, attempt)
    if index < 0 or index >= len(questions):
        raise QuestionNotFound(details={"index": index, "total_questions": len(questions)})

    if not attempt.assessment.allow_backtrack and index < session.current_question_index:
        raise BacktrackNotAllowed(details={"index": index,
                                           "current_index": session.current_question_index})
    if index > session.current_question_index:
        session.current_question_index = index
        db.commit()

    aq = questions[index]
    question = aq.question
    answer = db.query(AttemptAnswer).filter(
        AttemptAnswer.attempt_id == attempt.id,
        AttemptAnswer.assessment_question_id == aq.id,
    ).first()

    payload = {
        "index": index,
        "total_questions": len(questions),
        "assessment_question_id": aq.id,
        "question_id": question.id,
        "type": question.question_type,
        "section": aq.section,
        "marks": float(aq.points or 0),
        "negative_marks": float(aq.negative_points or 0),
        "is_mandatory": aq.is_mandatory,
        "is_flagged": answer.is_flagged if answer else False,
    }

    if question.is_coding:
        meta = question.meta
        last = (
            db.query(CodingSubmission)
            .filter(CodingSubmission.attempt_id == attempt.id,
                    CodingSubmission.assessment_question_id == aq.id)
            .order_by(CodingSubmission.submitted_at.desc(), CodingSubmission.id.desc())
            .first()
        )
        payload.update({
            "title": question.question_text,
            "description": question.question_text,
            "constraints": meta.get("constraints"),
            "examples": meta.get("sample_test_cases", []),
            "supported_languages": meta.get("supported_languages", []),
            "starter_code": meta.get("starter_code", {}),
            "previous_code": last.source_code if last else None,
            "previous_language": last.language if last else None,
        })
        return payload

    payload.update({
        "question_text": question.question_text,
        "options": [
            {"id": o.id, "label": o.option_label, "text": o.option_text}
            for o in _ordered_options(attempt, question)
        ],
        "previous_answer": answer.selected_option_ids if answer else [],
    })
    return payload
