"""
CodingSubmission model - code sent to the judge for a coding question.

Trial runs are stored with is_final_submission = False and never count
toward the score. The final submission for an (attempt, question) pair
is a single row updated in place on re-submission.
"""

from sqlalchemy import Column, Text, Integer, Float, Boolean, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import relationship
from attempt_engine.clock import utcnow
from attempt_engine.database import Base, Id, JsonType


class SubmissionStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong_answer"
    RUNTIME_ERROR = "runtime_error"


class CodingSubmission(Base):
    __tablename__ = "coding_submissions"

    id = Column(Id, primary_key=True, autoincrement=True)
    attempt_id = Column(Id, ForeignKey("assessment_attempts.id"), nullable=False)
    assessment_question_id = Column(Id, ForeignKey("assessment_questions.id"), nullable=False)
    question_id = Column(Id, ForeignKey("questions.id"), nullable=False)
    student_id = Column(Id, nullable=False)
    language = Column(String(32), nullable=False)
    source_code = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=SubmissionStatus.PENDING,
                    doc="pending | accepted | wrong_answer | runtime_error")
    tests_passed = Column(Integer, nullable=False, default=0)
    tests_total = Column(Integer, nullable=False, default=0)
    points_earned = Column(Float, nullable=False, default=0)
    max_points = Column(Float, nullable=False, default=0)
    outputs = Column(JsonType, nullable=True, doc="Raw per-test output lines")
    error = Column(Text, nullable=True, doc="stderr or timeout message")
    is_final_submission = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime, default=utcnow)

    attempt = relationship("Attempt", back_populates="coding_submissions")

    __table_args__ = (
        Index("ix_coding_submissions_attempt_question", "attempt_id", "assessment_question_id"),
        # At most one final submission per (attempt, question)
        Index("uq_coding_submissions_final", "attempt_id", "assessment_question_id",
              unique=True,
              postgresql_where=text("is_final_submission"),
              sqlite_where=text("is_final_submission = 1")),
    )

    def __repr__(self):
        return f"<CodingSubmission(id={self.id}, attempt={self.attempt_id}, status='{self.status}', final={self.is_final_submission})>"
