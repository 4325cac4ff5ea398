"""
Question models - question bank entries and their options.

MCQ questions own labelled options with a correctness flag each.
Coding questions keep their problem data in the metadata JSON:
    {
        "supported_languages": ["python", "javascript"],
        "entry_function": "solve",
        "sample_test_cases": [{"input": ..., "output": ...}],
        "test_cases": [{"input": ..., "output": ...}],
        "starter_code": {"python": "def solve(s):\\n    ..."},
        "constraints": "..."
    }
"""

from sqlalchemy import Column, Text, Integer, Boolean, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from attempt_engine.database import Base, Id, JsonType


class QuestionType:
    SINGLE_CORRECT = "single_correct"
    MULTIPLE_CORRECT = "multiple_correct"
    TRUE_FALSE = "true_false"
    CODING = "coding"

    MCQ_TYPES = (SINGLE_CORRECT, MULTIPLE_CORRECT, TRUE_FALSE)


class Question(Base):
    """SQLAlchemy model for the questions table."""
    __tablename__ = "questions"

    id = Column(Id, primary_key=True, autoincrement=True)
    question_type = Column(String(32), nullable=False,
                           doc="single_correct | multiple_correct | true_false | coding")
    question_text = Column(Text, nullable=False)
    question_metadata = Column("metadata", JsonType, nullable=True,
                               doc="Coding problem data (languages, test cases, starter code)")
    tags = Column(JsonType, nullable=True)

    options = relationship("QuestionOption", back_populates="question",
                           order_by="QuestionOption.sort_order")

    @property
    def is_coding(self) -> bool:
        return self.question_type == QuestionType.CODING

    @property
    def meta(self) -> dict:
        return self.question_metadata or {}

    @property
    def correct_option_ids(self) -> set:
        return {o.id for o in self.options if o.is_correct}

    def __repr__(self):
        return f"<Question(id={self.id}, type='{self.question_type}')>"


class QuestionOption(Base):
    __tablename__ = "question_options"

    id = Column(Id, primary_key=True, autoincrement=True)
    question_id = Column(Id, ForeignKey("questions.id"), nullable=False)
    option_label = Column(String(8), nullable=False)
    option_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    question = relationship("Question", back_populates="options")

    __table_args__ = (
        Index("ix_question_options_question_id", "question_id"),
    )
