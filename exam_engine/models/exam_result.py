"""
ExamResult model - rolling per-student aggregate across finalized attempts
"""
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, UniqueConstraint, Uuid
from exam_engine.database import Base
from exam_engine.utils.clock import utcnow
import uuid


class ExamResult(Base):
    """
    Exam results table - best/average scores, pass flag, rank and percentile
    """
    __tablename__ = "exam_results"
    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", name="uq_exam_results_exam_student"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid(as_uuid=True), ForeignKey("exams.id"), nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    attempt_id = Column(Uuid(as_uuid=True), ForeignKey("exam_attempts.id"))  # best attempt

    best_marks = Column(Float)
    best_percentage = Column(Float)
    best_attempt_number = Column(Integer)
    total_attempts = Column(Integer, nullable=False, default=0)
    average_marks = Column(Float)
    average_percentage = Column(Float)
    is_passed = Column(Boolean, nullable=False, default=False)
    rank = Column(Integer)
    percentile = Column(Float)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return (
            f"<ExamResult(exam_id={self.exam_id}, student_id={self.student_id}, "
            f"best={self.best_marks}, rank={self.rank})>"
        )
