"""
Exam integrity: tab-switch counting and forced submission on breach
"""
import logging
from typing import NamedTuple, Optional
from uuid import UUID

from exam_engine.exceptions import AttemptNotInProgressError, NotFoundError
from exam_engine.models import ExamAttempt
from exam_engine.services.attempt_service import ExamAttemptService

logger = logging.getLogger(__name__)


class TabSwitchOutcome(NamedTuple):
    count: int
    exceeded: bool
    max_tab_switches: Optional[int]
    attempt: Optional[ExamAttempt]  # the auto-submitted attempt on breach


class IntegrityMonitor:
    """Counts focus-loss events and auto-submits past the exam's threshold"""

    def __init__(self, attempt_service: ExamAttemptService):
        self.attempts = attempt_service
        self.store = attempt_service.store
        self.catalog = attempt_service.catalog

    def record_tab_switch(self, attempt_id: UUID) -> TabSwitchOutcome:
        """
        Record one tab switch

        The increment and a breach-triggered submission commit together.

        Raises:
            NotFoundError: attempt or exam missing
            AttemptNotInProgressError: attempt already finalized
        """
        with self.store.transaction():
            attempt = self.store.get_attempt(attempt_id)
            if attempt is None:
                raise NotFoundError("Attempt")

            exam = self.catalog.get_exam(attempt.exam_id)
            if exam is None:
                raise NotFoundError("Exam")

            count = self.store.increment_tab_switch(attempt_id)
            if count is None:
                raise AttemptNotInProgressError()

            if not exam.enable_tab_switch_detection:
                return TabSwitchOutcome(count, False, None, None)

            if count < exam.max_tab_switches:
                logger.info(f"Tab switch {count}/{exam.max_tab_switches} on attempt {attempt_id}")
                return TabSwitchOutcome(count, False, exam.max_tab_switches, None)

            logger.warning(
                f"Tab switch limit reached on attempt {attempt_id} "
                f"({count}/{exam.max_tab_switches}), auto-submitting"
            )
            submitted = self.attempts.submit_attempt(attempt_id, auto=True)

        # Again now that the increment and the submission have committed
        self.attempts.notify_finalized(exam.id)
        return TabSwitchOutcome(count, True, exam.max_tab_switches, submitted)
