"""
Exam catalog models - owned by the exam catalog, read-only for the engine
"""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import relationship
from exam_engine.database import Base
from exam_engine.utils.clock import utcnow
import uuid


class ExamStatus:
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    STARTABLE = (SCHEDULED, LIVE)


class Exam(Base):
    """
    Exams table - timing window, attempt policy and integrity settings
    """
    __tablename__ = "exams"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=ExamStatus.DRAFT)
    duration_minutes = Column(Integer, nullable=False, default=60)
    start_time = Column(DateTime(timezone=True))
    end_time = Column(DateTime(timezone=True))
    total_marks = Column(Float)
    passing_marks = Column(Float)
    max_attempts = Column(Integer, nullable=False, default=1)
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    shuffle_options = Column(Boolean, nullable=False, default=False)
    allow_review = Column(Boolean, nullable=False, default=True)
    enable_tab_switch_detection = Column(Boolean, nullable=False, default=False)
    max_tab_switches = Column(Integer, nullable=False, default=3)
    access_code = Column(String(50))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    exam_questions = relationship(
        "ExamQuestion",
        order_by="ExamQuestion.sequence_order",
        back_populates="exam",
    )

    def __repr__(self):
        return f"<Exam(id={self.id}, title={self.title}, status={self.status})>"


class ExamQuestion(Base):
    """
    Exam questions table - assigns a bank question to an exam with optional mark overrides
    """
    __tablename__ = "exam_questions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid(as_uuid=True), ForeignKey("exams.id"), nullable=False, index=True)
    question_id = Column(Uuid(as_uuid=True), ForeignKey("questions.id"), nullable=False)
    positive_marks = Column(Float)  # overrides Question.positive_marks when set
    negative_marks = Column(Float)
    sequence_order = Column(Integer, nullable=False, default=0)

    exam = relationship("Exam", back_populates="exam_questions")
    question = relationship("Question")

    def __repr__(self):
        return f"<ExamQuestion(exam_id={self.exam_id}, question_id={self.question_id})>"
