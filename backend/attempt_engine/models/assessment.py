"""
Assessment models - the exam definition a student attempts.

An Assessment carries its timing window, navigation and proctoring flags.
AssessmentQuestion links a Question into an assessment with the points
and negative points it is worth there. AssessmentBatch assigns the
assessment to an audience batch. None of these rows change while
attempts are running.
"""

from sqlalchemy import Column, Text, Integer, Float, Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from attempt_engine.clock import utcnow
from attempt_engine.database import Base, Id


class AssessmentPublishStatus:
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Assessment(Base):
    """SQLAlchemy model for the assessments table."""
    __tablename__ = "assessments"

    id = Column(Id, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=AssessmentPublishStatus.DRAFT,
                    doc="draft | published | archived")
    is_deleted = Column(Boolean, nullable=False, default=False)
    duration_minutes = Column(Integer, nullable=False, default=60,
                              doc="Time allowed once the attempt has started")
    start_time = Column(DateTime, nullable=True,
                        doc="Window opens (NULL = open immediately)")
    end_time = Column(DateTime, nullable=True,
                      doc="Window closes (NULL = never)")
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    shuffle_options = Column(Boolean, nullable=False, default=False)
    allow_backtrack = Column(Boolean, nullable=False, default=True)
    max_attempts = Column(Integer, nullable=False, default=1,
                          doc="Number of finished attempts a student may have")
    require_webcam = Column(Boolean, nullable=False, default=False)
    require_microphone = Column(Boolean, nullable=False, default=False)
    proctoring_enabled = Column(Boolean, nullable=False, default=False,
                                doc="Full proctoring: both device checks are required")
    show_correct_answers = Column(Boolean, nullable=False, default=False,
                                  doc="Reveal correct options in answer responses")
    auto_submit = Column(Boolean, nullable=False, default=True,
                         doc="Finalize in-progress attempts when the window closes")
    passing_marks = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    questions = relationship("AssessmentQuestion", back_populates="assessment",
                             order_by="AssessmentQuestion.sort_order")
    batches = relationship("AssessmentBatch", back_populates="assessment")

    @property
    def camera_required(self) -> bool:
        return bool(self.require_webcam or self.proctoring_enabled)

    @property
    def microphone_required(self) -> bool:
        return bool(self.require_microphone or self.proctoring_enabled)

    def __repr__(self):
        return f"<Assessment(id={self.id}, title='{self.title}', status='{self.status}')>"


class AssessmentQuestion(Base):
    """
    SQLAlchemy model for the assessment_questions table.

    points is awarded for a correct answer; negative_points is subtracted
    for a wrong one. Coding questions earn points in proportion to the
    test cases passed.
    """
    __tablename__ = "assessment_questions"

    id = Column(Id, primary_key=True, autoincrement=True)
    assessment_id = Column(Id, ForeignKey("assessments.id"), nullable=False)
    question_id = Column(Id, ForeignKey("questions.id"), nullable=False)
    points = Column(Float, nullable=False, default=1)
    negative_points = Column(Float, nullable=False, default=0)
    is_mandatory = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)
    section = Column(Text, nullable=True)

    assessment = relationship("Assessment", back_populates="questions")
    question = relationship("Question")

    __table_args__ = (
        Index("ix_assessment_questions_assessment_id", "assessment_id"),
    )

    def __repr__(self):
        return f"<AssessmentQuestion(id={self.id}, assessment={self.assessment_id}, question={self.question_id}, points={self.points})>"


class AssessmentBatch(Base):
    """Assignment of an assessment to an audience batch."""
    __tablename__ = "assessment_batches"

    assessment_id = Column(Id, ForeignKey("assessments.id"), primary_key=True)
    batch_id = Column(Id, primary_key=True)

    assessment = relationship("Assessment", back_populates="batches")
