"""
Periodic auto-submission of attempts whose exam window has closed
"""
import asyncio
import logging
from typing import Callable

from sqlalchemy.orm import Session

from exam_engine.exceptions import AttemptNotInProgressError
from exam_engine.services.attempt_service import ExamAttemptService
from exam_engine.utils.clock import ensure_utc

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    Force-submits in-progress attempts of exams whose end_time has passed

    Safe to re-run: attempts finalized in the meantime drop out of the
    in-progress scan, and submission itself is guarded by status.

    Args:
        session_factory: Creates one session per sweep pass
        service_factory: Builds the attempt service over a session
        interval_seconds: Delay between passes in run_forever()
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        service_factory: Callable[[Session], ExamAttemptService],
        interval_seconds: int = 60,
    ):
        self.session_factory = session_factory
        self.service_factory = service_factory
        self.interval_seconds = interval_seconds

    def sweep(self) -> int:
        """Run one pass; returns how many attempts were auto-submitted"""
        db = self.session_factory()
        try:
            service = self.service_factory(db)
            now = service.clock()
            submitted = 0
            exams = {}

            candidates = [(a.id, a.exam_id) for a in service.store.list_in_progress_attempts()]
            db.rollback()  # end the scan's read transaction before per-attempt work

            for attempt_id, exam_id in candidates:
                try:
                    if exam_id not in exams:
                        exams[exam_id] = service.catalog.get_exam(exam_id)
                    exam = exams[exam_id]
                    if exam is None or exam.end_time is None:
                        continue
                    if ensure_utc(exam.end_time) >= now:
                        continue

                    service.submit_attempt(attempt_id, auto=True)
                    submitted += 1
                except AttemptNotInProgressError:
                    logger.info(f"Attempt {attempt_id} was finalized before the sweep reached it")
                except Exception:
                    # One bad attempt must not stop the pass
                    logger.error(f"Failed to auto-submit attempt {attempt_id}", exc_info=True)
                    db.rollback()

            if submitted:
                logger.info(f"Expiry sweep auto-submitted {submitted} attempt(s)")
            return submitted
        finally:
            db.close()

    async def run_forever(self):
        """Sweep every interval until cancelled"""
        logger.info(f"Expiry sweeper running every {self.interval_seconds}s")
        while True:
            try:
                await asyncio.to_thread(self.sweep)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("Expiry sweep pass failed", exc_info=True)
            await asyncio.sleep(self.interval_seconds)
