"""
ExamResponse model - one question's answer within an attempt
"""
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from exam_engine.database import Base, JSONType
from exam_engine.utils.clock import utcnow
import uuid


class ExamResponse(Base):
    """
    Exam responses table - answer payload, review flag and grading outcome

    Rows are created empty when the attempt starts; is_correct and
    marks_awarded stay NULL until the attempt is submitted.
    """
    __tablename__ = "exam_responses"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_exam_responses_attempt_question"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    attempt_id = Column(Uuid(as_uuid=True), ForeignKey("exam_attempts.id"), nullable=False, index=True)
    question_id = Column(Uuid(as_uuid=True), ForeignKey("questions.id"), nullable=False)
    exam_question_id = Column(Uuid(as_uuid=True), ForeignKey("exam_questions.id"))

    # Answer payload; which field is used depends on the question type
    selected_option_ids = Column(JSONType)  # ["<option uuid>", ...]
    numerical_answer = Column(Float)
    text_answer = Column(Text)

    is_attempted = Column(Boolean, nullable=False, default=False)
    is_marked_for_review = Column(Boolean, nullable=False, default=False)
    time_spent_seconds = Column(Integer, nullable=False, default=0)

    is_correct = Column(Boolean)  # NULL when not attempted or not auto-gradable
    marks_awarded = Column(Float)

    answered_at = Column(DateTime(timezone=True))
    last_modified_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return (
            f"<ExamResponse(attempt_id={self.attempt_id}, question_id={self.question_id}, "
            f"attempted={self.is_attempted})>"
        )
