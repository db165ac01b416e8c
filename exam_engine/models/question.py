"""
Question bank models - immutable question definitions with answer metadata
"""
from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship
from exam_engine.database import Base
import uuid


class QuestionType:
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    NUMERICAL = "numerical"
    SUBJECTIVE = "subjective"

    ALL = (SINGLE_CHOICE, MULTIPLE_CHOICE, TRUE_FALSE, NUMERICAL, SUBJECTIVE)


class Question(Base):
    """
    Questions table - text, type and default marking scheme
    """
    __tablename__ = "questions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(20), nullable=False)
    numerical_answer = Column(Float)
    numerical_tolerance = Column(Float)
    model_answer = Column(Text)
    explanation = Column(Text)
    positive_marks = Column(Float, nullable=False, default=4.0)
    negative_marks = Column(Float, nullable=False, default=1.0)
    partial_marks_allowed = Column(Boolean, nullable=False, default=False)

    options = relationship(
        "QuestionOption",
        order_by="QuestionOption.sequence_order",
        back_populates="question",
    )

    def __repr__(self):
        return f"<Question(id={self.id}, type={self.question_type})>"


class QuestionOption(Base):
    """
    Question options table - choices for choice-type questions
    """
    __tablename__ = "question_options"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    question_id = Column(Uuid(as_uuid=True), ForeignKey("questions.id"), nullable=False, index=True)
    option_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    sequence_order = Column(Integer, nullable=False, default=0)

    question = relationship("Question", back_populates="options")

    def __repr__(self):
        return f"<QuestionOption(id={self.id}, correct={self.is_correct})>"
