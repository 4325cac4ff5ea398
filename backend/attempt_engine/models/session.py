"""
AssessmentSession model - the single live client bound to an attempt.

A session is created at consent and carries the opaque token the client
uses for the readiness sequence. At most one session per attempt is
active; resuming replaces it and finalization closes it.

Device checks are stored as explicit columns and exposed as the typed
DeviceChecks structure.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel
from sqlalchemy import Column, Text, Integer, Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from attempt_engine.clock import utcnow
from attempt_engine.database import Base, Id


class CheckStatus:
    NOT_RUN = "not_run"
    SUCCESS = "success"
    FAILED = "failed"


class Device:
    MIC = "mic"
    CAMERA = "camera"

    ALL = (MIC, CAMERA)


class CheckState(BaseModel):
    status: str = CheckStatus.NOT_RUN
    at: Optional[datetime] = None

    @property
    def passed(self) -> bool:
        return self.status == CheckStatus.SUCCESS


class DeviceChecks(BaseModel):
    mic: CheckState
    camera: CheckState


class AssessmentSession(Base):
    """SQLAlchemy model for the assessment_sessions table."""
    __tablename__ = "assessment_sessions"

    id = Column(Id, primary_key=True, autoincrement=True)
    attempt_id = Column(Id, ForeignKey("assessment_attempts.id"), nullable=False)
    student_id = Column(Id, nullable=False)
    assessment_id = Column(Id, ForeignKey("assessments.id"), nullable=False)
    session_token = Column(String(128), nullable=False, unique=True,
                           doc="Opaque, unguessable token handed to the client")
    current_round = Column(Integer, nullable=False, default=1)
    current_question_index = Column(Integer, nullable=False, default=0,
                                    doc="Furthest question index visited")
    mic_check_status = Column(String(16), nullable=False, default=CheckStatus.NOT_RUN)
    mic_checked_at = Column(DateTime, nullable=True)
    camera_check_status = Column(String(16), nullable=False, default=CheckStatus.NOT_RUN)
    camera_checked_at = Column(DateTime, nullable=True)
    last_heartbeat_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    user_agent = Column(Text, nullable=True)
    started_at = Column(DateTime, default=utcnow)
    ended_at = Column(DateTime, nullable=True)

    attempt = relationship("Attempt", back_populates="sessions")

    __table_args__ = (
        Index("ix_sessions_attempt_active", "attempt_id", "is_active"),
        Index("ix_sessions_student_assessment", "student_id", "assessment_id"),
    )

    @property
    def device_checks(self) -> DeviceChecks:
        return DeviceChecks(
            mic=CheckState(status=self.mic_check_status, at=self.mic_checked_at),
            camera=CheckState(status=self.camera_check_status, at=self.camera_checked_at),
        )

    def set_device_check(self, device: str, status: str, at: datetime):
        if device == Device.MIC:
            self.mic_check_status = status
            self.mic_checked_at = at
        elif device == Device.CAMERA:
            self.camera_check_status = status
            self.camera_checked_at = at
        else:
            raise ValueError(f"Unknown device: {device}")

    def __repr__(self):
        return f"<AssessmentSession(id={self.id}, attempt={self.attempt_id}, active={self.is_active})>"


class ProctoringEvent(Base):
    """
    Audit record of a proctoring incident (failed device check, tab switch, ...).

    Evidence files live in external blob storage; only their URLs are kept.
    """
    __tablename__ = "proctoring_events"

    id = Column(Id, primary_key=True, autoincrement=True)
    attempt_id = Column(Id, ForeignKey("assessment_attempts.id"), nullable=False)
    session_id = Column(Id, ForeignKey("assessment_sessions.id"), nullable=True)
    event_type = Column(String(64), nullable=False)
    details = Column(Text, nullable=True)
    video_url = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_proctoring_events_attempt_id", "attempt_id"),
    )

    def __repr__(self):
        return f"<ProctoringEvent(id={self.id}, attempt={self.attempt_id}, type='{self.event_type}')>"
