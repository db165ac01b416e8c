"""
Pydantic schemas for attempt lifecycle requests and responses
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from exam_engine.schemas.answers import Answer


class StartAttemptRequest(BaseModel):
    """Body of a start request; the exam and student come from the path and headers"""
    access_code: Optional[str] = Field(None, max_length=50)


class StudentOption(BaseModel):
    """Option as shown to a student - correctness hidden"""
    id: UUID
    option_text: str
    sequence_order: int


class StudentQuestion(BaseModel):
    """Question as shown to a student - no answers, no explanation"""
    id: UUID
    exam_question_id: UUID
    question_text: str
    question_type: str
    positive_marks: float
    negative_marks: float
    options: List[StudentOption] = Field(default_factory=list)


class AttemptRead(BaseModel):
    id: UUID
    exam_id: UUID
    student_id: UUID
    attempt_number: int
    status: str
    started_at: datetime
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None
    time_taken_seconds: Optional[int] = None
    question_order: List[UUID]
    total_questions: int
    attempted_questions: int
    correct_answers: Optional[int] = None
    wrong_answers: Optional[int] = None
    skipped_questions: Optional[int] = None
    marks_obtained: Optional[float] = None
    percentage: Optional[float] = None
    rank: Optional[int] = None
    tab_switch_count: int

    class Config:
        from_attributes = True


class ResponseRead(BaseModel):
    id: UUID
    attempt_id: UUID
    question_id: UUID
    exam_question_id: Optional[UUID] = None
    selected_option_ids: Optional[List[UUID]] = None
    numerical_answer: Optional[float] = None
    text_answer: Optional[str] = None
    is_attempted: bool
    is_marked_for_review: bool
    time_spent_seconds: int
    is_correct: Optional[bool] = None
    marks_awarded: Optional[float] = None
    answered_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StartAttemptResponse(BaseModel):
    attempt: AttemptRead
    questions: List[StudentQuestion]
    resumed: bool = False


class AttemptDetail(BaseModel):
    attempt: AttemptRead
    responses: List[ResponseRead]


class SaveResponseRequest(BaseModel):
    """
    Answer to one question; ``answer`` null (or an empty answer) clears it
    """
    question_id: UUID
    answer: Optional[Answer] = None
    is_marked_for_review: bool = False
    time_spent_seconds: int = Field(0, ge=0)


class SubmitAttemptResponse(BaseModel):
    attempt: AttemptRead
    message: str


class TabSwitchResponse(BaseModel):
    count: int
    exceeded: bool
    max_tab_switches: Optional[int] = None
    attempt: Optional[AttemptRead] = None  # set when the breach auto-submitted the attempt


class AttemptListResponse(BaseModel):
    attempts: List[AttemptRead]
    total: int
    page: int
    limit: int
