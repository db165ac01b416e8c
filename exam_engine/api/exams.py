"""
Exam-scoped API endpoints: start, results, leaderboard, staff tools
"""
from fastapi import APIRouter, Depends, Query, Request
from typing import List, Optional
from uuid import UUID
import logging

from exam_engine.api.dependencies import (
    Caller,
    get_attempt_service,
    get_cache_service,
    get_caller,
    get_student_caller,
    require_staff,
)
from exam_engine.config import settings
from exam_engine.schemas.attempt import (
    AttemptListResponse,
    AttemptRead,
    StartAttemptRequest,
    StartAttemptResponse,
)
from exam_engine.schemas.result import (
    ExamResultRead,
    LeaderboardEntry,
    LeaderboardResponse,
    RankCalculationResponse,
)
from exam_engine.services.attempt_service import ExamAttemptService
from exam_engine.utils.cache import CacheService

router = APIRouter(prefix="/api/exams", tags=["exams"])
logger = logging.getLogger(__name__)


@router.post("/{exam_id}/start", response_model=StartAttemptResponse)
def start_attempt(
    exam_id: UUID,
    request: Request,
    payload: Optional[StartAttemptRequest] = None,
    caller: Caller = Depends(get_student_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
):
    """
    Start an attempt, or resume the in-progress one (page reloads)

    - Entry opens shortly before start_time and closes at end_time
    - Access code checked when the exam has one
    - Questions come back without answer keys
    """
    started = service.start_attempt(
        exam_id,
        caller.student_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        access_code=payload.access_code if payload else None,
    )

    return StartAttemptResponse(
        attempt=AttemptRead.model_validate(started.attempt),
        questions=started.questions,
        resumed=started.resumed,
    )


@router.get("/{exam_id}/result", response_model=ExamResultRead)
def get_my_result(
    exam_id: UUID,
    caller: Caller = Depends(get_student_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
):
    """Best/average aggregate of the caller's finalized attempts"""
    result = service.get_student_result(exam_id, caller.student_id)
    return ExamResultRead.model_validate(result)


@router.get("/{exam_id}/my-attempts", response_model=List[AttemptRead])
def get_my_attempts(
    exam_id: UUID,
    caller: Caller = Depends(get_student_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
):
    """The caller's attempts at this exam, oldest first"""
    attempts = service.get_student_attempts(exam_id, caller.student_id)
    return [AttemptRead.model_validate(a) for a in attempts]


@router.get("/{exam_id}/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard(
    exam_id: UUID,
    limit: int = Query(settings.DEFAULT_LEADERBOARD_LIMIT, ge=1, le=settings.MAX_LEADERBOARD_LIMIT),
    caller: Caller = Depends(get_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
    cache: CacheService = Depends(get_cache_service),
):
    """
    Top results by best marks

    Cached briefly; invalidated on submissions and rank recalculation.
    """
    cache_key = cache.leaderboard_key(str(exam_id), limit)
    cached = cache.get(cache_key)
    if cached:
        return LeaderboardResponse(**cached)

    results = service.get_leaderboard(exam_id, limit)
    response = LeaderboardResponse(
        exam_id=exam_id,
        entries=[
            LeaderboardEntry(
                position=position,
                student_id=result.student_id,
                best_marks=result.best_marks,
                best_percentage=result.best_percentage,
                total_attempts=result.total_attempts,
                rank=result.rank,
                percentile=result.percentile,
            )
            for position, result in enumerate(results, start=1)
        ],
    )

    cache.set(cache_key, response.model_dump(mode="json"))
    return response


@router.get("/{exam_id}/attempts", response_model=AttemptListResponse)
def list_exam_attempts(
    exam_id: UUID,
    status: Optional[str] = Query(None, description="Filter by attempt status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(require_staff),
    service: ExamAttemptService = Depends(get_attempt_service),
):
    """All attempts of an exam, latest submissions first (staff only)"""
    attempts, total = service.get_exam_attempts(exam_id, status=status, page=page, limit=limit)

    return AttemptListResponse(
        attempts=[AttemptRead.model_validate(a) for a in attempts],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("/{exam_id}/calculate-ranks", response_model=RankCalculationResponse)
def calculate_ranks(
    exam_id: UUID,
    caller: Caller = Depends(require_staff),
    service: ExamAttemptService = Depends(get_attempt_service),
    cache: CacheService = Depends(get_cache_service),
):
    """
    Recompute rank and percentile of every result (staff only)

    Standard competition ranking on best marks: ties share a rank.
    """
    results = service.calculate_ranks(exam_id)
    cache.invalidate_leaderboard(str(exam_id))

    logger.info(f"Ranks recalculated for exam {exam_id} by {caller.role}")
    return RankCalculationResponse(
        exam_id=exam_id,
        ranked=len(results),
        results=[ExamResultRead.model_validate(r) for r in results],
    )
