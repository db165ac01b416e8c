"""
ExamAttempt model - one timed, numbered try by a student at an exam
"""
from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, Uuid, text
from exam_engine.database import Base, JSONType
from exam_engine.utils.clock import utcnow
import uuid


class AttemptStatus:
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    AUTO_SUBMITTED = "auto_submitted"
    GRADED = "graded"
    ABANDONED = "abandoned"

    FINALIZED = (SUBMITTED, AUTO_SUBMITTED, GRADED)


class ExamAttempt(Base):
    """
    Exam attempts table - lifecycle state, question snapshot and tallies

    At most one row per (exam_id, student_id) may be in progress; the
    partial unique index below enforces it at the storage layer.
    """
    __tablename__ = "exam_attempts"
    __table_args__ = (
        Index(
            "uq_exam_attempts_one_in_progress",
            "exam_id",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid(as_uuid=True), ForeignKey("exams.id"), nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=AttemptStatus.IN_PROGRESS)

    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    submitted_at = Column(DateTime(timezone=True))
    graded_at = Column(DateTime(timezone=True))
    time_taken_seconds = Column(Integer)

    # Snapshot taken at start, never recomputed
    question_order = Column(JSONType, nullable=False)  # ["<question uuid>", ...]
    total_questions = Column(Integer, nullable=False)

    attempted_questions = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer)
    wrong_answers = Column(Integer)
    skipped_questions = Column(Integer)
    marks_obtained = Column(Float)
    percentage = Column(Float)
    rank = Column(Integer)

    tab_switch_count = Column(Integer, nullable=False, default=0)
    ip_address = Column(String(64))
    user_agent = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return (
            f"<ExamAttempt(id={self.id}, exam_id={self.exam_id}, "
            f"attempt={self.attempt_number}, status={self.status})>"
        )
