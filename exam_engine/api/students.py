"""
Student-scoped API endpoints
"""
from fastapi import APIRouter, Depends
from typing import List
from uuid import UUID

from exam_engine.api.dependencies import Caller, get_attempt_service, get_caller
from exam_engine.exceptions import AccessDeniedError
from exam_engine.schemas.result import ExamResultRead
from exam_engine.services.attempt_service import ExamAttemptService

router = APIRouter(prefix="/api/students", tags=["students"])


@router.get("/{student_id}/results", response_model=List[ExamResultRead])
def get_student_results(
    student_id: UUID,
    caller: Caller = Depends(get_caller),
    service: ExamAttemptService = Depends(get_attempt_service),
):
    """Every exam result of a student (the student themself or staff)"""
    if not caller.is_staff and caller.student_id != student_id:
        raise AccessDeniedError()

    return [ExamResultRead.model_validate(r) for r in service.get_student_results(student_id)]
