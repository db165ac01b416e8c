"""
Attempt store - persistence capability for attempts, responses and results

The lifecycle controller only talks to AttemptStore; the SQLAlchemy
implementation relies on the database for the two guarantees the engine
needs: the partial unique index on in-progress attempts and status-guarded
conditional updates.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from exam_engine.models import AttemptStatus, ExamAttempt, ExamResponse, ExamResult

logger = logging.getLogger(__name__)


class DuplicateInProgressAttempt(Exception):
    """Another in-progress attempt for the same (exam, student) won the insert"""


class AttemptStore(ABC):
    """Storage capability required by the attempt lifecycle"""

    @abstractmethod
    def transaction(self):
        """Context manager; the outermost block commits or rolls back"""

    # Attempts

    @abstractmethod
    def get_attempt(self, attempt_id: UUID) -> Optional[ExamAttempt]:
        ...

    @abstractmethod
    def get_in_progress_attempt(self, exam_id: UUID, student_id: UUID) -> Optional[ExamAttempt]:
        ...

    @abstractmethod
    def count_finalized_attempts(self, exam_id: UUID, student_id: UUID) -> int:
        ...

    @abstractmethod
    def create_attempt(self, attempt: ExamAttempt, responses: Iterable[ExamResponse]) -> ExamAttempt:
        """Insert an attempt with its empty responses; raises DuplicateInProgressAttempt"""

    @abstractmethod
    def claim_for_submission(
        self, attempt_id: UUID, status: str, submitted_at: datetime, time_taken_seconds: int
    ) -> bool:
        """Move an in-progress attempt to a finalized status; False if it was not in progress"""

    @abstractmethod
    def increment_tab_switch(self, attempt_id: UUID) -> Optional[int]:
        """Atomically bump tab_switch_count of an in-progress attempt; None if not in progress"""

    @abstractmethod
    def list_in_progress_attempts(self) -> List[ExamAttempt]:
        ...

    @abstractmethod
    def list_student_attempts(self, exam_id: UUID, student_id: UUID) -> List[ExamAttempt]:
        ...

    @abstractmethod
    def list_exam_attempts(
        self, exam_id: UUID, status: Optional[str], offset: int, limit: int
    ) -> Tuple[List[ExamAttempt], int]:
        ...

    # Responses

    @abstractmethod
    def get_responses(self, attempt_id: UUID) -> List[ExamResponse]:
        ...

    @abstractmethod
    def get_response(self, attempt_id: UUID, question_id: UUID) -> Optional[ExamResponse]:
        ...

    @abstractmethod
    def add_response(self, response: ExamResponse) -> ExamResponse:
        ...

    @abstractmethod
    def count_attempted_responses(self, attempt_id: UUID) -> int:
        ...

    # Results

    @abstractmethod
    def get_result(self, exam_id: UUID, student_id: UUID) -> Optional[ExamResult]:
        ...

    @abstractmethod
    def add_result(self, result: ExamResult) -> ExamResult:
        ...

    @abstractmethod
    def list_results_by_best_marks(self, exam_id: UUID, limit: Optional[int] = None) -> List[ExamResult]:
        ...

    @abstractmethod
    def list_student_results(self, student_id: UUID) -> List[ExamResult]:
        ...

    @abstractmethod
    def flush(self) -> None:
        ...


class SqlAlchemyAttemptStore(AttemptStore):
    """AttemptStore over one SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    @contextmanager
    def transaction(self):
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.db.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self.db.commit()

    def get_attempt(self, attempt_id: UUID) -> Optional[ExamAttempt]:
        return self.db.query(ExamAttempt).filter(ExamAttempt.id == attempt_id).first()

    def get_in_progress_attempt(self, exam_id: UUID, student_id: UUID) -> Optional[ExamAttempt]:
        return (
            self.db.query(ExamAttempt)
            .filter(
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.student_id == student_id,
                ExamAttempt.status == AttemptStatus.IN_PROGRESS,
            )
            .first()
        )

    def count_finalized_attempts(self, exam_id: UUID, student_id: UUID) -> int:
        return (
            self.db.query(func.count(ExamAttempt.id))
            .filter(
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.student_id == student_id,
                ExamAttempt.status.in_(AttemptStatus.FINALIZED),
            )
            .scalar()
            or 0
        )

    def create_attempt(self, attempt: ExamAttempt, responses: Iterable[ExamResponse]) -> ExamAttempt:
        self.db.add(attempt)
        try:
            # Flush the attempt alone first so a lost race fails before any response insert
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(
                f"In-progress attempt already exists for exam {attempt.exam_id}, "
                f"student {attempt.student_id}: {e.orig}"
            )
            raise DuplicateInProgressAttempt(str(e.orig)) from e

        self.db.add_all(list(responses))
        self.db.flush()
        return attempt

    def claim_for_submission(
        self, attempt_id: UUID, status: str, submitted_at: datetime, time_taken_seconds: int
    ) -> bool:
        self.db.flush()
        result = self.db.execute(
            update(ExamAttempt)
            .where(
                ExamAttempt.id == attempt_id,
                ExamAttempt.status == AttemptStatus.IN_PROGRESS,
            )
            .values(
                status=status,
                submitted_at=submitted_at,
                time_taken_seconds=time_taken_seconds,
            )
            .execution_options(synchronize_session=False)
        )
        # Loaded instances are stale after a bulk UPDATE
        self.db.expire_all()
        return result.rowcount == 1

    def increment_tab_switch(self, attempt_id: UUID) -> Optional[int]:
        self.db.flush()
        result = self.db.execute(
            update(ExamAttempt)
            .where(
                ExamAttempt.id == attempt_id,
                ExamAttempt.status == AttemptStatus.IN_PROGRESS,
            )
            .values(tab_switch_count=ExamAttempt.tab_switch_count + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        if result.rowcount != 1:
            return None

        return (
            self.db.query(ExamAttempt.tab_switch_count)
            .filter(ExamAttempt.id == attempt_id)
            .scalar()
        )

    def list_in_progress_attempts(self) -> List[ExamAttempt]:
        return (
            self.db.query(ExamAttempt)
            .filter(ExamAttempt.status == AttemptStatus.IN_PROGRESS)
            .order_by(ExamAttempt.started_at)
            .all()
        )

    def list_student_attempts(self, exam_id: UUID, student_id: UUID) -> List[ExamAttempt]:
        return (
            self.db.query(ExamAttempt)
            .filter(ExamAttempt.exam_id == exam_id, ExamAttempt.student_id == student_id)
            .order_by(ExamAttempt.attempt_number)
            .all()
        )

    def list_exam_attempts(
        self, exam_id: UUID, status: Optional[str], offset: int, limit: int
    ) -> Tuple[List[ExamAttempt], int]:
        query = self.db.query(ExamAttempt).filter(ExamAttempt.exam_id == exam_id)
        if status:
            query = query.filter(ExamAttempt.status == status)

        total = query.count()
        attempts = (
            query.order_by(ExamAttempt.submitted_at.desc().nulls_last(), ExamAttempt.started_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return attempts, total

    def get_responses(self, attempt_id: UUID) -> List[ExamResponse]:
        return self.db.query(ExamResponse).filter(ExamResponse.attempt_id == attempt_id).all()

    def get_response(self, attempt_id: UUID, question_id: UUID) -> Optional[ExamResponse]:
        return (
            self.db.query(ExamResponse)
            .filter(ExamResponse.attempt_id == attempt_id, ExamResponse.question_id == question_id)
            .first()
        )

    def add_response(self, response: ExamResponse) -> ExamResponse:
        self.db.add(response)
        self.db.flush()
        return response

    def count_attempted_responses(self, attempt_id: UUID) -> int:
        self.db.flush()
        return (
            self.db.query(func.count(ExamResponse.id))
            .filter(ExamResponse.attempt_id == attempt_id, ExamResponse.is_attempted.is_(True))
            .scalar()
            or 0
        )

    def get_result(self, exam_id: UUID, student_id: UUID) -> Optional[ExamResult]:
        return (
            self.db.query(ExamResult)
            .filter(ExamResult.exam_id == exam_id, ExamResult.student_id == student_id)
            .first()
        )

    def add_result(self, result: ExamResult) -> ExamResult:
        self.db.add(result)
        self.db.flush()
        return result

    def list_results_by_best_marks(self, exam_id: UUID, limit: Optional[int] = None) -> List[ExamResult]:
        query = (
            self.db.query(ExamResult)
            .filter(ExamResult.exam_id == exam_id)
            .order_by(ExamResult.best_marks.desc().nulls_last(), ExamResult.created_at)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def list_student_results(self, student_id: UUID) -> List[ExamResult]:
        return (
            self.db.query(ExamResult)
            .filter(ExamResult.student_id == student_id)
            .order_by(ExamResult.updated_at.desc())
            .all()
        )

    def flush(self) -> None:
        self.db.flush()
