"""
Exam catalog access

The catalog is owned by another service; the engine only reads exam
configuration and the ordered question bank through this interface.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from exam_engine.models import Exam, ExamQuestion, Question
from exam_engine.schemas.catalog import ExamConfig, ExamQuestionEntry, MarkingScheme
from exam_engine.utils.clock import ensure_utc

logger = logging.getLogger(__name__)


def resolve_marking(entry: ExamQuestionEntry) -> MarkingScheme:
    """Exam-level override when present, otherwise the question's own default"""
    question = entry.question
    positive = entry.positive_marks if entry.positive_marks is not None else question.positive_marks
    negative = entry.negative_marks if entry.negative_marks is not None else question.negative_marks
    return MarkingScheme(positive_marks=positive, negative_marks=negative)


def compute_total_marks(entries: List[ExamQuestionEntry]) -> float:
    return sum(resolve_marking(entry).positive_marks for entry in entries)


class ExamCatalog(ABC):
    """Read-only source of exam configuration and questions"""

    @abstractmethod
    def get_exam(self, exam_id: UUID) -> Optional[ExamConfig]:
        ...

    @abstractmethod
    def get_exam_questions(self, exam_id: UUID) -> List[ExamQuestionEntry]:
        """Questions assigned to the exam, in the bank's stored sequence order"""
        ...


class SqlAlchemyExamCatalog(ExamCatalog):
    """Catalog backed by the exams/questions tables of the shared database"""

    def __init__(self, db: Session):
        self.db = db

    def get_exam(self, exam_id: UUID) -> Optional[ExamConfig]:
        exam = self.db.query(Exam).filter(Exam.id == exam_id).first()
        if not exam:
            return None

        config = ExamConfig.model_validate(exam, from_attributes=True)
        config.start_time = ensure_utc(exam.start_time)
        config.end_time = ensure_utc(exam.end_time)

        if exam.total_marks is None:
            config.total_marks = compute_total_marks(self.get_exam_questions(exam_id))
            logger.debug(f"Exam {exam_id} has no stored total_marks, computed {config.total_marks}")

        return config

    def get_exam_questions(self, exam_id: UUID) -> List[ExamQuestionEntry]:
        rows = (
            self.db.query(ExamQuestion)
            .options(selectinload(ExamQuestion.question).selectinload(Question.options))
            .filter(ExamQuestion.exam_id == exam_id)
            .order_by(ExamQuestion.sequence_order, ExamQuestion.id)
            .all()
        )
        return [ExamQuestionEntry.model_validate(row, from_attributes=True) for row in rows]
