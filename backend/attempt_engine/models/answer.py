"""
AttemptAnswer model - the student's current answer to one MCQ question.

One row per (attempt, assessment_question). Later writes overwrite
earlier ones; no answer history is kept. is_correct and points_earned
are computed server-side at write time.
"""

from sqlalchemy import Column, Integer, Float, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from attempt_engine.database import Base, Id, JsonType


class AttemptAnswer(Base):
    __tablename__ = "attempt_answers"

    id = Column(Id, primary_key=True, autoincrement=True)
    attempt_id = Column(Id, ForeignKey("assessment_attempts.id"), nullable=False)
    assessment_question_id = Column(Id, ForeignKey("assessment_questions.id"), nullable=False)
    question_id = Column(Id, ForeignKey("questions.id"), nullable=False)
    selected_option_ids = Column(JsonType, nullable=False, default=list,
                                 doc="Selected option ids, sorted")
    is_correct = Column(Boolean, nullable=False, default=False)
    points_earned = Column(Float, nullable=False, default=0,
                           doc="+points when correct, -negative_points when wrong")
    is_flagged = Column(Boolean, nullable=False, default=False,
                        doc="Marked for review by the student; no scoring effect")
    time_taken_seconds = Column(Integer, nullable=True)
    answered_at = Column(DateTime, nullable=True)

    attempt = relationship("Attempt", back_populates="answers")
    assessment_question = relationship("AssessmentQuestion")

    __table_args__ = (
        UniqueConstraint("attempt_id", "assessment_question_id",
                         name="uq_attempt_answers_attempt_question"),
    )

    @property
    def is_answered(self) -> bool:
        return bool(self.selected_option_ids)

    def __repr__(self):
        return f"<AttemptAnswer(attempt={self.attempt_id}, aq={self.assessment_question_id}, correct={self.is_correct}, points={self.points_earned})>"
