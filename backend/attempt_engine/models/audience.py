"""
BatchStudent model - roster membership used for eligibility checks.

Rosters are administered elsewhere; the engine only reads them.
"""

from sqlalchemy import Column, Boolean, Index
from attempt_engine.database import Base, Id


class BatchStudent(Base):
    __tablename__ = "batch_students"

    batch_id = Column(Id, primary_key=True)
    student_id = Column(Id, primary_key=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_batch_students_student_id", "student_id"),
    )

    def __repr__(self):
        return f"<BatchStudent(batch={self.batch_id}, student={self.student_id}, active={self.is_active})>"
