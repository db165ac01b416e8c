"""
Result aggregation: per-attempt tallies, per-student rolling results, ranking
"""
import logging
from typing import Iterable, List, NamedTuple, Optional, Tuple
from uuid import UUID

from exam_engine.models import ExamAttempt, ExamResponse, ExamResult
from exam_engine.schemas.catalog import ExamConfig
from exam_engine.services.attempt_store import AttemptStore

logger = logging.getLogger(__name__)


class AttemptSummary(NamedTuple):
    correct: int
    wrong: int
    skipped: int
    marks: float
    percentage: float


def to_percentage(marks: float, total_marks: Optional[float]) -> float:
    if not total_marks or total_marks <= 0:
        return 0.0
    return round(marks / total_marks * 100, 2)


def summarize_responses(responses: Iterable[ExamResponse], total_marks: Optional[float]) -> AttemptSummary:
    """
    Tally graded responses of one attempt

    Partial credit counts as wrong. Attempted but ungraded responses
    (subjective, or skipped by a grading failure) are neither correct,
    wrong nor skipped. The mark total is floored at zero.
    """
    correct = wrong = skipped = 0
    marks = 0.0

    for response in responses:
        if not response.is_attempted:
            skipped += 1
        elif response.is_correct is True:
            correct += 1
            marks += response.marks_awarded or 0.0
        elif response.is_correct is False:
            wrong += 1
            marks += response.marks_awarded or 0.0

    marks = max(0.0, marks)
    return AttemptSummary(
        correct=correct,
        wrong=wrong,
        skipped=skipped,
        marks=marks,
        percentage=to_percentage(marks, total_marks),
    )


def is_passing(marks: float, passing_marks: Optional[float]) -> bool:
    # An exam without a passing mark passes every finalized attempt
    if passing_marks is None:
        return True
    return marks >= passing_marks


def rolling_average(current: Optional[float], count: int, new_value: float) -> float:
    return ((current or 0.0) * count + new_value) / (count + 1)


def competition_ranks(scores: List[Optional[float]]) -> List[Tuple[int, float]]:
    """
    Standard competition ranking of scores already sorted descending

    Returns (rank, percentile) per score: ties share a rank and the next
    distinct score skips ahead (1, 1, 3).
    """
    n = len(scores)
    ranked = []
    current_rank = 0
    previous = object()

    for index, score in enumerate(scores):
        if score != previous:
            current_rank = index + 1
            previous = score
        percentile = round((n - current_rank) / n * 100, 2)
        ranked.append((current_rank, percentile))

    return ranked


class ResultAggregator:
    """Folds finalized attempts into ExamResult rows and ranks them"""

    def __init__(self, store: AttemptStore):
        self.store = store

    def record_attempt(self, attempt: ExamAttempt, exam: ExamConfig) -> ExamResult:
        """Create or update the student's ExamResult with a freshly finalized attempt"""
        marks = attempt.marks_obtained or 0.0
        percentage = attempt.percentage or 0.0
        passed = is_passing(marks, exam.passing_marks)

        result = self.store.get_result(attempt.exam_id, attempt.student_id)

        if result is None:
            result = ExamResult(
                exam_id=attempt.exam_id,
                student_id=attempt.student_id,
                attempt_id=attempt.id,
                best_marks=marks,
                best_percentage=percentage,
                best_attempt_number=attempt.attempt_number,
                total_attempts=1,
                average_marks=marks,
                average_percentage=percentage,
                is_passed=passed,
            )
            self.store.add_result(result)
            logger.info(f"Result created for exam {attempt.exam_id}, student {attempt.student_id}: {marks}")
            return result

        count = result.total_attempts or 0
        result.average_marks = rolling_average(result.average_marks, count, marks)
        result.average_percentage = rolling_average(result.average_percentage, count, percentage)
        result.total_attempts = count + 1

        if marks > (result.best_marks or 0.0):
            result.attempt_id = attempt.id
            result.best_marks = marks
            result.best_percentage = percentage
            result.best_attempt_number = attempt.attempt_number

        # Once passed, always passed
        result.is_passed = bool(result.is_passed) or passed

        self.store.flush()
        logger.info(
            f"Result updated for exam {attempt.exam_id}, student {attempt.student_id}: "
            f"attempts={result.total_attempts}, best={result.best_marks}"
        )
        return result

    def calculate_ranks(self, exam_id: UUID) -> List[ExamResult]:
        """Batch ranking of every result of an exam by best marks"""
        results = self.store.list_results_by_best_marks(exam_id)
        if not results:
            return results

        ranks = competition_ranks([result.best_marks or 0.0 for result in results])

        for result, (rank, percentile) in zip(results, ranks):
            result.rank = rank
            result.percentile = percentile

            if result.attempt_id:
                best_attempt = self.store.get_attempt(result.attempt_id)
                if best_attempt is not None:
                    best_attempt.rank = rank

        self.store.flush()
        logger.info(f"Ranks calculated for exam {exam_id}: {len(results)} result(s)")
        return results
