"""
Read-only views of the exam catalog consumed by the engine
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from uuid import UUID
from datetime import datetime


class ExamConfig(BaseModel):
    """Immutable exam configuration"""
    id: UUID
    title: str
    status: str
    duration_minutes: int = 60
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_marks: Optional[float] = None  # filled from the question set when not stored
    passing_marks: Optional[float] = None
    max_attempts: int = 1
    shuffle_questions: bool = False
    shuffle_options: bool = False
    allow_review: bool = True
    enable_tab_switch_detection: bool = False
    max_tab_switches: int = 3
    access_code: Optional[str] = None

    class Config:
        from_attributes = True


class OptionDefinition(BaseModel):
    id: UUID
    option_text: str
    is_correct: bool = False
    sequence_order: int = 0

    class Config:
        from_attributes = True


class QuestionDefinition(BaseModel):
    """A bank question with its correct-answer metadata and default marks"""
    id: UUID
    question_text: str
    question_type: str
    options: List[OptionDefinition] = Field(default_factory=list)
    numerical_answer: Optional[float] = None
    numerical_tolerance: Optional[float] = None
    explanation: Optional[str] = None
    positive_marks: float = 4.0
    negative_marks: float = 1.0
    partial_marks_allowed: bool = False

    class Config:
        from_attributes = True

    @property
    def correct_option_ids(self) -> set:
        return {option.id for option in self.options if option.is_correct}


class ExamQuestionEntry(BaseModel):
    """A question as assigned to one exam, with optional per-exam mark overrides"""
    id: UUID
    sequence_order: int = 0
    positive_marks: Optional[float] = None
    negative_marks: Optional[float] = None
    question: QuestionDefinition

    class Config:
        from_attributes = True


class MarkingScheme(BaseModel):
    """Effective marks for one question within one exam"""
    positive_marks: float
    negative_marks: float
