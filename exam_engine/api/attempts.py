"""
Attempt lifecycle API endpoints: answer, submit, integrity events, review
"""
from fastapi import APIRouter, Depends
from uuid import UUID
import logging

from exam_engine.api.dependencies import (
    Caller,
    ensure_attempt_access,
    get_attempt_service,
    get_caller,
    get_integrity_monitor,
    get_student_caller,
)
from exam_engine.schemas.attempt import (
    AttemptDetail,
    AttemptRead,
    ResponseRead,
    SaveResponseRequest,
    SubmitAttemptResponse,
    TabSwitchResponse,
)
from exam_engine.schemas.result import DetailedResult
from exam_engine.services.attempt_service import ExamAttemptService
from exam_engine.services.integrity_monitor import IntegrityMonitor

router = APIRouter(prefix="/api/attempts", tags=["attempts"])
logger = logging.getLogger(__name__)


@router.get("/{attempt_id}", response_model=AttemptDetail)
def get_attempt(
    attempt_id: UUID,
    caller: Caller = Depends(get_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
):
    """Attempt record with its responses in question order"""
    attempt, responses = service.get_attempt_detail(attempt_id)
    ensure_attempt_access(attempt, caller)

    return AttemptDetail(
        attempt=AttemptRead.model_validate(attempt),
        responses=[ResponseRead.model_validate(r) for r in responses],
    )


@router.post("/{attempt_id}/responses", response_model=ResponseRead)
def save_response(
    attempt_id: UUID,
    payload: SaveResponseRequest,
    caller: Caller = Depends(get_student_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
):
    """
    Save (or clear) the answer to one question

    - Upserts by (attempt, question)
    - Recounts attempted questions on every save
    """
    ensure_attempt_access(service.get_attempt(attempt_id), caller, owner_only=True)

    response = service.save_response(
        attempt_id,
        payload.question_id,
        answer=payload.answer,
        is_marked_for_review=payload.is_marked_for_review,
        time_spent_seconds=payload.time_spent_seconds,
    )
    return ResponseRead.model_validate(response)


@router.post("/{attempt_id}/submit", response_model=SubmitAttemptResponse)
def submit_attempt(
    attempt_id: UUID,
    caller: Caller = Depends(get_student_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
):
    """
    Submit and grade an attempt

    A second submit of the same attempt fails with 409.
    """
    ensure_attempt_access(service.get_attempt(attempt_id), caller, owner_only=True)

    attempt = service.submit_attempt(attempt_id, auto=False)

    return SubmitAttemptResponse(
        attempt=AttemptRead.model_validate(attempt),
        message="Exam submitted successfully",
    )


@router.post("/{attempt_id}/tab-switch", response_model=TabSwitchResponse)
def record_tab_switch(
    attempt_id: UUID,
    caller: Caller = Depends(get_student_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
    monitor: IntegrityMonitor = Depends(get_integrity_monitor),
):
    """
    Record a tab switch

    When the exam's limit is reached the attempt is auto-submitted and
    the response carries exceeded=true with the finalized attempt.
    """
    ensure_attempt_access(service.get_attempt(attempt_id), caller, owner_only=True)

    outcome = monitor.record_tab_switch(attempt_id)

    attempt = None
    if outcome.attempt is not None:
        attempt = AttemptRead.model_validate(outcome.attempt)

    return TabSwitchResponse(
        count=outcome.count,
        exceeded=outcome.exceeded,
        max_tab_switches=outcome.max_tab_switches,
        attempt=attempt,
    )


@router.get("/{attempt_id}/review", response_model=DetailedResult)
def review_attempt(
    attempt_id: UUID,
    caller: Caller = Depends(get_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
):
    """
    Answer-key review of a finalized attempt

    Students need the exam's allow_review flag; staff can always review.
    """
    ensure_attempt_access(service.get_attempt(attempt_id), caller)
    return service.get_detailed_result(attempt_id, is_staff=caller.is_staff)
