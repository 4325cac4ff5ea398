"""
Runtime API routes - everything a student does inside a live attempt.

All endpoints resolve the attempt through the caller's active session
(X-Student-Id header + assessment id); nothing here accepts an attempt id
from the client.
"""

import time
from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from attempt_engine.database import get_db
from attempt_engine.deps import get_executor, get_student_id
from attempt_engine.judge.executor import Executor
from attempt_engine.services import coding, finalization, questions, scoring
from attempt_engine.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class McqAnswerRequest(BaseModel):
    """Selected option ids; an empty list clears the answer."""
    selected_option_ids: List[int] = Field(default_factory=list)
    time_taken_seconds: Optional[int] = Field(None, ge=0)


class CodeRequest(BaseModel):
    language: str
    source_code: str


class FlagRequest(BaseModel):
    is_flagged: bool = True


@router.get("/api/assessments/{assessment_id}/runtime")
def get_runtime_config(assessment_id: int, student_id: int = Depends(get_student_id),
                       db: Session = Depends(get_db)):
    return questions.get_runtime_config(db, student_id, assessment_id)


@router.get("/api/assessments/{assessment_id}/questions/{index}")
def get_question(assessment_id: int, index: int,
                 student_id: int = Depends(get_student_id),
                 db: Session = Depends(get_db)):
    """Question at a position in the attempt's (possibly shuffled) order."""
    return questions.get_question(db, student_id, assessment_id, index)


@router.put("/api/assessments/{assessment_id}/answers/{assessment_question_id}")
def save_mcq_answer(assessment_id: int, assessment_question_id: int,
                    request: McqAnswerRequest,
                    student_id: int = Depends(get_student_id),
                    db: Session = Depends(get_db)):
    return scoring.save_mcq_answer(
        db, student_id, assessment_id, assessment_question_id,
        request.selected_option_ids, time_taken_seconds=request.time_taken_seconds,
    )


@router.post("/api/assessments/{assessment_id}/questions/{assessment_question_id}/run")
def run_code(assessment_id: int, assessment_question_id: int, request: CodeRequest,
             student_id: int = Depends(get_student_id),
             executor: Executor = Depends(get_executor),
             db: Session = Depends(get_db)):
    """Trial run against the sample test cases. Never scored."""
    return coding.run_coding(db, executor, student_id, assessment_id,
                             assessment_question_id, request.language, request.source_code)


@router.post("/api/assessments/{assessment_id}/questions/{assessment_question_id}/submit")
def submit_code(assessment_id: int, assessment_question_id: int, request: CodeRequest,
                student_id: int = Depends(get_student_id),
                executor: Executor = Depends(get_executor),
                db: Session = Depends(get_db)):
    """Final submission for a coding question, judged against the full test set."""
    return coding.final_submit(db, executor, student_id, assessment_id,
                               assessment_question_id, request.language, request.source_code)


@router.put("/api/assessments/{assessment_id}/flags/{assessment_question_id}")
def flag_question(assessment_id: int, assessment_question_id: int, request: FlagRequest,
                  student_id: int = Depends(get_student_id),
                  db: Session = Depends(get_db)):
    return scoring.flag_question(db, student_id, assessment_id, assessment_question_id,
                                 request.is_flagged)


@router.get("/api/assessments/{assessment_id}/submit-preview")
def get_submit_preview(assessment_id: int, student_id: int = Depends(get_student_id),
                       db: Session = Depends(get_db)):
    return finalization.get_submit_preview(db, student_id, assessment_id)


@router.post("/api/assessments/{assessment_id}/submit")
def submit_attempt(assessment_id: int, student_id: int = Depends(get_student_id),
                   db: Session = Depends(get_db)):
    """Finalize the attempt. Repeated calls return the stored result."""
    start_time = time.time()
    result = finalization.submit(db, student_id, assessment_id)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Submit handled for assessment {} (already_finalized={})".format(
            assessment_id, result["already_finalized"]),
        context={"student_id": student_id, "attempt_id": result["attempt_id"]},
        extra_data={"duration_ms": round(duration_ms, 2)})
    return result
