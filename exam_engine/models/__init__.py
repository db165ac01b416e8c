"""
Database models package
"""
from exam_engine.models.exam import Exam, ExamQuestion, ExamStatus
from exam_engine.models.question import Question, QuestionOption, QuestionType
from exam_engine.models.exam_attempt import ExamAttempt, AttemptStatus
from exam_engine.models.exam_response import ExamResponse
from exam_engine.models.exam_result import ExamResult

__all__ = [
    "Exam",
    "ExamQuestion",
    "ExamStatus",
    "Question",
    "QuestionOption",
    "QuestionType",
    "ExamAttempt",
    "AttemptStatus",
    "ExamResponse",
    "ExamResult",
]
