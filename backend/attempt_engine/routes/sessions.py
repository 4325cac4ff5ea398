"""
Session API routes - the pre-exam sequence.

Provides endpoints for:
- Consent (begin): create or resume the attempt, issue a session token
- Reading and recording microphone / camera checks
- Starting the attempt
- Reporting proctoring events during the attempt
"""

from typing import Optional
from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from attempt_engine.database import get_db
from attempt_engine.deps import get_student_id
from attempt_engine.services import readiness

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class DeviceCheckRequest(BaseModel):
    """Outcome of one client-side device check."""
    device: str = Field(..., description="mic | camera")
    status: str = Field(..., description="success | failed")


class ProctoringEventRequest(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=50)
    details: Optional[str] = None
    video_url: Optional[str] = None
    image_url: Optional[str] = None


@router.post("/api/assessments/{assessment_id}/begin")
def begin_attempt(
    assessment_id: int,
    student_id: int = Depends(get_student_id),
    user_agent: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """Consent step. Always issues a fresh session and closes the previous one."""
    return readiness.begin(db, student_id, assessment_id, user_agent=user_agent)


@router.get("/api/sessions/{session_token}/device-checks")
def get_device_checks(session_token: str, db: Session = Depends(get_db)):
    return readiness.get_device_checks(db, session_token)


@router.post("/api/sessions/{session_token}/device-checks")
def record_device_check(session_token: str, request: DeviceCheckRequest,
                        db: Session = Depends(get_db)):
    return readiness.record_device_check(db, session_token, request.device, request.status)


@router.post("/api/sessions/{session_token}/start")
def start_attempt(session_token: str, db: Session = Depends(get_db)):
    return readiness.start(db, session_token)


@router.post("/api/assessments/{assessment_id}/proctoring-events", status_code=201)
def record_proctoring_event(
    assessment_id: int,
    request: ProctoringEventRequest,
    student_id: int = Depends(get_student_id),
    db: Session = Depends(get_db),
):
    return readiness.record_proctoring_event(
        db, student_id, assessment_id, request.event_type,
        details=request.details, video_url=request.video_url, image_url=request.image_url,
    )
