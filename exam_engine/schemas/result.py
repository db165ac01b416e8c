"""
Pydantic schemas for results, leaderboards and attempt review
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from exam_engine.schemas.attempt import AttemptRead, ResponseRead


class ExamResultRead(BaseModel):
    id: UUID
    exam_id: UUID
    student_id: UUID
    attempt_id: Optional[UUID] = None
    best_marks: Optional[float] = None
    best_percentage: Optional[float] = None
    best_attempt_number: Optional[int] = None
    total_attempts: int
    average_marks: Optional[float] = None
    average_percentage: Optional[float] = None
    is_passed: bool
    rank: Optional[int] = None
    percentile: Optional[float] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LeaderboardEntry(BaseModel):
    position: int
    student_id: UUID
    best_marks: Optional[float] = None
    best_percentage: Optional[float] = None
    total_attempts: int
    rank: Optional[int] = None
    percentile: Optional[float] = None


class LeaderboardResponse(BaseModel):
    exam_id: UUID
    entries: List[LeaderboardEntry]


class RankCalculationResponse(BaseModel):
    exam_id: UUID
    ranked: int
    results: List[ExamResultRead]


class ExamSummary(BaseModel):
    id: UUID
    title: str
    total_marks: Optional[float] = None
    passing_marks: Optional[float] = None
    duration_minutes: int


class ReviewOption(BaseModel):
    id: UUID
    option_text: str
    sequence_order: int
    is_correct: bool


class ReviewQuestion(BaseModel):
    """Full question with its answer key, shown only after finalization"""
    id: UUID
    question_text: str
    question_type: str
    options: List[ReviewOption] = Field(default_factory=list)
    numerical_answer: Optional[float] = None
    numerical_tolerance: Optional[float] = None
    explanation: Optional[str] = None
    positive_marks: float
    negative_marks: float


class ReviewItem(BaseModel):
    question: Optional[ReviewQuestion] = None  # None if removed from the exam since
    response: ResponseRead


class DetailedResult(BaseModel):
    attempt: AttemptRead
    exam: ExamSummary
    items: List[ReviewItem]
