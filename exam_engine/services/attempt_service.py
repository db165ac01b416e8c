"""
Exam attempt lifecycle

in_progress -> submitted | auto_submitted, graded synchronously on submit.
Every public method runs inside one store transaction, so a call either
takes full effect or none.
"""
import logging
import random
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple
from uuid import UUID

from exam_engine.exceptions import (
    AttemptNotInProgressError,
    ExamEndedError,
    ExamEngineError,
    ExamNotAvailableError,
    InvalidAccessCodeError,
    InvalidAnswerError,
    MaxAttemptsReachedError,
    NotFoundError,
    ReviewNotAllowedError,
)
from exam_engine.models import AttemptStatus, ExamAttempt, ExamResponse, ExamResult, ExamStatus
from exam_engine.schemas.answers import (
    ANSWER_KIND_BY_QUESTION_TYPE,
    answer_from_columns,
    answer_is_empty,
    answer_to_columns,
)
from exam_engine.schemas.attempt import AttemptRead, ResponseRead, StudentOption, StudentQuestion
from exam_engine.schemas.catalog import ExamConfig, ExamQuestionEntry
from exam_engine.schemas.result import (
    DetailedResult,
    ExamSummary,
    ReviewItem,
    ReviewOption,
    ReviewQuestion,
)
from exam_engine.services.attempt_store import AttemptStore, DuplicateInProgressAttempt
from exam_engine.services.catalog import ExamCatalog, resolve_marking
from exam_engine.services.grading_service import GradingService, grading_service
from exam_engine.services.result_aggregator import ResultAggregator, summarize_responses
from exam_engine.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class StartedAttempt(NamedTuple):
    attempt: ExamAttempt
    questions: List[StudentQuestion]
    resumed: bool


class ExamAttemptService:
    """
    Entry point for every attempt operation

    Args:
        store: Persistence for attempts, responses and results
        catalog: Read-only exam configuration and question bank
        grading: Grading engine
        clock: Returns the current aware UTC time
        rng: Source of randomness for question shuffling
        early_entry_minutes: How long before start_time students may enter
        on_finalized: Called with the exam id after a submission commits
    """

    def __init__(
        self,
        store: AttemptStore,
        catalog: ExamCatalog,
        grading: Optional[GradingService] = None,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
        early_entry_minutes: int = 10,
        on_finalized: Optional[Callable[[UUID], None]] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.grading = grading or grading_service
        self.clock = clock
        self.rng = rng or random.Random()
        self.early_entry = timedelta(minutes=early_entry_minutes)
        self.on_finalized = on_finalized
        self.aggregator = ResultAggregator(store)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start_attempt(
        self,
        exam_id: UUID,
        student_id: UUID,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        access_code: Optional[str] = None,
    ) -> StartedAttempt:
        """
        Start a new attempt or resume the student's in-progress one

        Raises:
            NotFoundError, ExamNotAvailableError, ExamEndedError,
            InvalidAccessCodeError, MaxAttemptsReachedError
        """
        exam = self._get_exam(exam_id)
        now = self.clock()

        self._check_availability(exam, now)

        if self._has_ended(exam, now):
            # A client that never submitted gets its attempt closed here
            self._close_lingering_attempt(exam, student_id)
            raise ExamEndedError()

        if exam.access_code and exam.access_code != access_code:
            raise InvalidAccessCodeError()

        with self.store.transaction():
            finalized = self.store.count_finalized_attempts(exam_id, student_id)
            if finalized >= exam.max_attempts:
                raise MaxAttemptsReachedError(exam.max_attempts)

            entries = self.catalog.get_exam_questions(exam_id)

            existing = self.store.get_in_progress_attempt(exam_id, student_id)
            if existing is not None:
                logger.info(f"Resuming attempt {existing.id} for exam {exam_id}, student {student_id}")
                return StartedAttempt(existing, self._student_questions(existing, exam, entries), True)

            attempt = self._new_attempt(exam, student_id, finalized + 1, entries, now, ip_address, user_agent)
            responses = self._empty_responses(attempt, entries)

            try:
                self.store.create_attempt(attempt, responses)
            except DuplicateInProgressAttempt:
                # A concurrent start won the insert; use its attempt
                attempt = self.store.get_in_progress_attempt(exam_id, student_id)
                if attempt is None:
                    raise AttemptNotInProgressError("Concurrent attempt could not be resumed")
                logger.warning(f"Start race lost for exam {exam_id}, student {student_id}; resumed {attempt.id}")
                return StartedAttempt(attempt, self._student_questions(attempt, exam, entries), True)

            logger.info(
                f"Attempt {attempt.id} started: exam {exam_id}, student {student_id}, "
                f"attempt #{attempt.attempt_number}, {attempt.total_questions} question(s)"
            )
            return StartedAttempt(attempt, self._student_questions(attempt, exam, entries), False)

    def _check_availability(self, exam: ExamConfig, now: datetime) -> None:
        if exam.status not in ExamStatus.STARTABLE:
            raise ExamNotAvailableError("Exam is not available")

        if exam.start_time and ensure_utc(exam.start_time) - now > self.early_entry:
            raise ExamNotAvailableError("Exam has not started yet")

    @staticmethod
    def _has_ended(exam: ExamConfig, now: datetime) -> bool:
        return exam.end_time is not None and ensure_utc(exam.end_time) < now

    def _close_lingering_attempt(self, exam: ExamConfig, student_id: UUID) -> None:
        try:
            with self.store.transaction():
                lingering = self.store.get_in_progress_attempt(exam.id, student_id)
                if lingering is None:
                    return
                self._finalize(lingering, exam, auto=True)
        except AttemptNotInProgressError:
            logger.info(f"Lingering attempt for exam {exam.id}, student {student_id} was finalized concurrently")
            return

        self.notify_finalized(exam.id)

    def _new_attempt(
        self,
        exam: ExamConfig,
        student_id: UUID,
        attempt_number: int,
        entries: List[ExamQuestionEntry],
        now: datetime,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> ExamAttempt:
        question_order = [str(entry.question.id) for entry in entries]
        if exam.shuffle_questions:
            self.rng.shuffle(question_order)

        return ExamAttempt(
            id=uuid.uuid4(),
            exam_id=exam.id,
            student_id=student_id,
            attempt_number=attempt_number,
            status=AttemptStatus.IN_PROGRESS,
            started_at=now,
            question_order=question_order,
            total_questions=len(question_order),
            attempted_questions=0,
            tab_switch_count=0,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @staticmethod
    def _empty_responses(attempt: ExamAttempt, entries: List[ExamQuestionEntry]) -> List[ExamResponse]:
        by_question = {str(entry.question.id): entry for entry in entries}
        return [
            ExamResponse(
                id=uuid.uuid4(),
                attempt_id=attempt.id,
                question_id=UUID(question_id),
                exam_question_id=by_question[question_id].id,
                is_attempted=False,
                is_marked_for_review=False,
                time_spent_seconds=0,
                last_modified_at=attempt.started_at,
            )
            for question_id in attempt.question_order
        ]

    def _student_questions(
        self,
        attempt: ExamAttempt,
        exam: ExamConfig,
        entries: List[ExamQuestionEntry],
    ) -> List[StudentQuestion]:
        """Client-safe questions in the attempt's order, answer keys stripped"""
        by_question = {str(entry.question.id): entry for entry in entries}
        questions = []

        for question_id in attempt.question_order:
            entry = by_question.get(str(question_id))
            if entry is None:
                continue

            options = sorted(entry.question.options, key=lambda option: option.sequence_order)
            if exam.shuffle_options:
                # Seeded per attempt and question so a reload shows the same order
                random.Random(f"{attempt.id}:{question_id}").shuffle(options)

            marking = resolve_marking(entry)
            questions.append(
                StudentQuestion(
                    id=entry.question.id,
                    exam_question_id=entry.id,
                    question_text=entry.question.question_text,
                    question_type=entry.question.question_type,
                    positive_marks=marking.positive_marks,
                    negative_marks=marking.negative_marks,
                    options=[
                        StudentOption(
                            id=option.id,
                            option_text=option.option_text,
                            sequence_order=option.sequence_order,
                        )
                        for option in options
                    ],
                )
            )

        return questions

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save_response(
        self,
        attempt_id: UUID,
        question_id: UUID,
        answer=None,
        is_marked_for_review: bool = False,
        time_spent_seconds: int = 0,
    ) -> ExamResponse:
        """
        Upsert one question's answer and recount attempted questions

        Raises:
            NotFoundError, AttemptNotInProgressError, InvalidAnswerError
        """
        with self.store.transaction():
            attempt = self._get_attempt(attempt_id)
            self._ensure_in_progress(attempt)

            if str(question_id) not in {str(q_id) for q_id in attempt.question_order}:
                raise InvalidAnswerError("Question is not part of this attempt")

            entry = self._entries_by_question(attempt.exam_id).get(str(question_id))
            if entry is None:
                raise NotFoundError("Question")

            expected_kind = ANSWER_KIND_BY_QUESTION_TYPE.get(entry.question.question_type)
            if answer is not None and answer.kind != expected_kind:
                raise InvalidAnswerError(
                    f"A {entry.question.question_type} question expects a {expected_kind} answer"
                )

            now = self.clock()
            is_attempted = not answer_is_empty(answer)

            response = self.store.get_response(attempt.id, question_id)
            if response is None:
                response = self.store.add_response(
                    ExamResponse(
                        id=uuid.uuid4(),
                        attempt_id=attempt.id,
                        question_id=question_id,
                        exam_question_id=entry.id,
                    )
                )

            for column, value in answer_to_columns(answer if is_attempted else None).items():
                setattr(response, column, value)
            response.is_attempted = is_attempted
            response.is_marked_for_review = is_marked_for_review
            response.time_spent_seconds = time_spent_seconds
            response.answered_at = now if is_attempted else None
            response.last_modified_at = now

            # Full recount keeps the tally right under retried or reordered saves
            attempt.attempted_questions = self.store.count_attempted_responses(attempt.id)
            self.store.flush()

            logger.debug(f"Saved response for attempt {attempt.id}, question {question_id}, attempted={is_attempted}")
            return response

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    def submit_attempt(self, attempt_id: UUID, auto: bool = False) -> ExamAttempt:
        """
        Finalize, grade and aggregate an in-progress attempt

        Submission is not idempotent: a second call fails with
        AttemptNotInProgressError and changes nothing.
        """
        with self.store.transaction():
            attempt = self._get_attempt(attempt_id)
            self._ensure_in_progress(attempt)
            exam = self._get_exam(attempt.exam_id)
            attempt = self._finalize(attempt, exam, auto)

        self.notify_finalized(exam.id)
        return attempt

    def notify_finalized(self, exam_id: UUID) -> None:
        """Run the on_finalized hook; a failing hook never undoes a committed submission"""
        if self.on_finalized is None:
            return
        try:
            self.on_finalized(exam_id)
        except Exception:
            logger.warning(f"on_finalized hook failed for exam {exam_id}", exc_info=True)

    def _finalize(self, attempt: ExamAttempt, exam: ExamConfig, auto: bool) -> ExamAttempt:
        now = self.clock()
        started_at = ensure_utc(attempt.started_at)
        time_taken = max(0, int((now - started_at).total_seconds()))
        status = AttemptStatus.AUTO_SUBMITTED if auto else AttemptStatus.SUBMITTED
        attempt_id = attempt.id

        # Only one caller can move the row out of in_progress
        if not self.store.claim_for_submission(attempt_id, status, now, time_taken):
            raise AttemptNotInProgressError()

        attempt = self.store.get_attempt(attempt_id)
        entries = self._entries_by_question(exam.id)
        responses = self.store.get_responses(attempt_id)

        for response in responses:
            self._grade_response(response, entries)

        summary = summarize_responses(responses, exam.total_marks)
        attempt.correct_answers = summary.correct
        attempt.wrong_answers = summary.wrong
        attempt.skipped_questions = summary.skipped
        attempt.marks_obtained = summary.marks
        attempt.percentage = summary.percentage
        attempt.graded_at = now
        self.store.flush()

        self.aggregator.record_attempt(attempt, exam)

        logger.info(
            f"Attempt {attempt_id} {status}: marks={summary.marks} ({summary.percentage}%), "
            f"correct={summary.correct}, wrong={summary.wrong}, skipped={summary.skipped}"
        )
        return attempt

    def _grade_response(self, response: ExamResponse, entries: Dict[str, ExamQuestionEntry]) -> None:
        entry = entries.get(str(response.question_id))
        if entry is None:
            logger.warning(f"Response {response.id} references question {response.question_id} no longer in exam")
            return

        try:
            answer = answer_from_columns(entry.question.question_type, response) if response.is_attempted else None
            outcome = self.grading.grade(entry.question, answer, resolve_marking(entry))
        except (ExamEngineError, ValueError):
            # One malformed response must not block the rest of the submission
            logger.error(f"Failed to grade response {response.id} of attempt {response.attempt_id}", exc_info=True)
            return

        if outcome is None:
            return

        response.is_correct = outcome.is_correct
        response.marks_awarded = outcome.marks_awarded

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_attempt(self, attempt_id: UUID) -> ExamAttempt:
        return self._get_attempt(attempt_id)

    def get_attempt_detail(self, attempt_id: UUID) -> Tuple[ExamAttempt, List[ExamResponse]]:
        """The attempt with its responses in question order"""
        attempt = self._get_attempt(attempt_id)
        return attempt, self._ordered_responses(attempt)

    def get_student_attempts(self, exam_id: UUID, student_id: UUID) -> List[ExamAttempt]:
        return self.store.list_student_attempts(exam_id, student_id)

    def get_exam_attempts(
        self, exam_id: UUID, status: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[ExamAttempt], int]:
        self._get_exam(exam_id)
        offset = (max(page, 1) - 1) * limit
        return self.store.list_exam_attempts(exam_id, status, offset, limit)

    def get_student_result(self, exam_id: UUID, student_id: UUID) -> ExamResult:
        result = self.store.get_result(exam_id, student_id)
        if result is None:
            raise NotFoundError("Result")
        return result

    def get_student_results(self, student_id: UUID) -> List[ExamResult]:
        return self.store.list_student_results(student_id)

    def get_leaderboard(self, exam_id: UUID, limit: int = 10) -> List[ExamResult]:
        self._get_exam(exam_id)
        return self.store.list_results_by_best_marks(exam_id, limit=limit)

    def calculate_ranks(self, exam_id: UUID) -> List[ExamResult]:
        self._get_exam(exam_id)
        with self.store.transaction():
            return self.aggregator.calculate_ranks(exam_id)

    def get_detailed_result(self, attempt_id: UUID, is_staff: bool = False) -> DetailedResult:
        """Answer-key review of a finalized attempt"""
        attempt = self._get_attempt(attempt_id)
        if attempt.status == AttemptStatus.IN_PROGRESS:
            raise AttemptNotInProgressError("Result not available yet")

        exam = self._get_exam(attempt.exam_id)
        if not is_staff and not exam.allow_review:
            raise ReviewNotAllowedError()

        entries = self._entries_by_question(exam.id)
        items = []
        for response in self._ordered_responses(attempt):
            entry = entries.get(str(response.question_id))
            items.append(
                ReviewItem(
                    question=self._review_question(entry) if entry else None,
                    response=ResponseRead.model_validate(response, from_attributes=True),
                )
            )

        return DetailedResult(
            attempt=AttemptRead.model_validate(attempt, from_attributes=True),
            exam=ExamSummary(
                id=exam.id,
                title=exam.title,
                total_marks=exam.total_marks,
                passing_marks=exam.passing_marks,
                duration_minutes=exam.duration_minutes,
            ),
            items=items,
        )

    @staticmethod
    def _review_question(entry: ExamQuestionEntry) -> ReviewQuestion:
        question = entry.question
        marking = resolve_marking(entry)
        return ReviewQuestion(
            id=question.id,
            question_text=question.question_text,
            question_type=question.question_type,
            options=[
                ReviewOption(
                    id=option.id,
                    option_text=option.option_text,
                    sequence_order=option.sequence_order,
                    is_correct=option.is_correct,
                )
                for option in sorted(question.options, key=lambda option: option.sequence_order)
            ],
            numerical_answer=question.numerical_answer,
            numerical_tolerance=question.numerical_tolerance,
            explanation=question.explanation,
            positive_marks=marking.positive_marks,
            negative_marks=marking.negative_marks,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_exam(self, exam_id: UUID) -> ExamConfig:
        exam = self.catalog.get_exam(exam_id)
        if exam is None:
            raise NotFoundError("Exam")
        return exam

    def _get_attempt(self, attempt_id: UUID) -> ExamAttempt:
        attempt = self.store.get_attempt(attempt_id)
        if attempt is None:
            raise NotFoundError("Attempt")
        return attempt

    @staticmethod
    def _ensure_in_progress(attempt: ExamAttempt) -> None:
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise AttemptNotInProgressError()

    def _entries_by_question(self, exam_id: UUID) -> Dict[str, ExamQuestionEntry]:
        return {str(entry.question.id): entry for entry in self.catalog.get_exam_questions(exam_id)}

    def _ordered_responses(self, attempt: ExamAttempt) -> List[ExamResponse]:
        position = {str(q_id): index for index, q_id in enumerate(attempt.question_order or [])}
        responses = self.store.get_responses(attempt.id)
        return sorted(responses, key=lambda r: position.get(str(r.question_id), len(position)))
