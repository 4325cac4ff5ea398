"""
Attempt model - one student's run at one assessment.

This is the central entity of the engine. Each attempt carries:
- Its lifecycle status (see AttemptStatus)
- Start/submit timestamps
- Aggregate counters kept up to date while answers are written
- The final score fields, frozen by finalization
"""

from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import relationship
from attempt_engine.clock import utcnow
from attempt_engine.database import Base, Id


class AttemptStatus:
    """
    Lifecycle statuses of an attempt:
    - not_started: created at consent, device checks may still be pending
    - in_progress: answers and submissions are accepted
    - submitted: finalization has begun
    - evaluated: score frozen (terminal)
    - expired: window closed before the attempt was finalized (terminal)
    """
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EVALUATED = "evaluated"
    EXPIRED = "expired"

    NON_TERMINAL = (NOT_STARTED, IN_PROGRESS)
    FINALIZED = (EVALUATED, EXPIRED)


class Attempt(Base):
    """
    SQLAlchemy model for the assessment_attempts table.

    The counters (answered/correct/wrong/score_obtained) are a display
    cache maintained by per-answer deltas. Finalization recomputes them
    from the answer and submission rows.
    """
    __tablename__ = "assessment_attempts"

    id = Column(Id, primary_key=True, autoincrement=True)
    student_id = Column(Id, nullable=False,
                        doc="Student taking the attempt")
    assessment_id = Column(Id, ForeignKey("assessments.id"), nullable=False)
    attempt_number = Column(Integer, nullable=False, default=1,
                            doc="Increases by one per (student, assessment)")
    status = Column(String(20), nullable=False, default=AttemptStatus.NOT_STARTED,
                    doc="not_started | in_progress | submitted | evaluated | expired")
    started_at = Column(DateTime, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    total_questions = Column(Integer, nullable=False, default=0)
    answered_questions = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=False, default=0)
    wrong_answers = Column(Integer, nullable=False, default=0)
    skipped_questions = Column(Integer, nullable=False, default=0)
    score_obtained = Column(Float, nullable=False, default=0,
                            doc="May be negative: penalties are not floored")
    total_score = Column(Float, nullable=False, default=0)
    percentage = Column(Float, nullable=False, default=0)
    time_taken_seconds = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    assessment = relationship("Assessment")
    sessions = relationship("AssessmentSession", back_populates="attempt")
    answers = relationship("AttemptAnswer", back_populates="attempt")
    coding_submissions = relationship("CodingSubmission", back_populates="attempt")

    __table_args__ = (
        UniqueConstraint("student_id", "assessment_id", "attempt_number",
                         name="uq_attempts_student_assessment_number"),
        Index("ix_attempts_student_assessment", "student_id", "assessment_id"),
        Index("ix_attempts_status", "status"),
    )

    @property
    def is_finalized(self) -> bool:
        return self.status in AttemptStatus.FINALIZED

    def __repr__(self):
        return f"<Attempt(id={self.id}, student={self.student_id}, assessment={self.assessment_id}, status='{self.status}')>"
