"""
Shared FastAPI dependencies: service wiring and caller identity
"""
from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from exam_engine.config import settings
from exam_engine.database import get_db
from exam_engine.exceptions import AccessDeniedError
from exam_engine.models import ExamAttempt
from exam_engine.services.attempt_service import ExamAttemptService
from exam_engine.services.attempt_store import SqlAlchemyAttemptStore
from exam_engine.services.catalog import SqlAlchemyExamCatalog
from exam_engine.services.integrity_monitor import IntegrityMonitor
from exam_engine.utils.cache import CacheService

STAFF_ROLES = ("teacher", "admin")


@lru_cache
def get_cache_service() -> CacheService:
    redis_url = settings.REDIS_URL if settings.CACHE_ENABLED else None
    return CacheService(redis_url, default_ttl=settings.LEADERBOARD_CACHE_TTL)


def build_attempt_service(db: Session, cache: Optional[CacheService] = None) -> ExamAttemptService:
    """
    Wire the attempt service over one database session

    With a cache, every committed submission drops the exam's cached
    leaderboard pages.
    """
    return ExamAttemptService(
        store=SqlAlchemyAttemptStore(db),
        catalog=SqlAlchemyExamCatalog(db),
        early_entry_minutes=settings.EARLY_ENTRY_MINUTES,
        on_finalized=cache.invalidate_leaderboard if cache is not None else None,
    )


def get_attempt_service(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
) -> ExamAttemptService:
    return build_attempt_service(db, cache)


def get_integrity_monitor(
    service: ExamAttemptService = Depends(get_attempt_service),
) -> IntegrityMonitor:
    return IntegrityMonitor(service)


class Caller:
    """Identity asserted by the upstream gateway"""

    def __init__(self, student_id: Optional[UUID], role: str):
        self.student_id = student_id
        self.role = role

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def get_caller(
    x_student_id: Optional[UUID] = Header(None, alias="X-Student-ID"),
    x_user_role: str = Header("student", alias="X-User-Role"),
) -> Caller:
    role = x_user_role.lower()
    if x_student_id is None and role not in STAFF_ROLES:
        raise HTTPException(status_code=401, detail="Missing student identity")
    return Caller(x_student_id, role)


def get_student_caller(caller: Caller = Depends(get_caller)) -> Caller:
    if caller.student_id is None:
        raise HTTPException(status_code=401, detail="Missing student identity")
    return caller


def require_staff(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_staff:
        raise AccessDeniedError("Teacher or admin role required")
    return caller


def ensure_attempt_access(attempt: ExamAttempt, caller: Caller, owner_only: bool = False) -> None:
    """Students may only touch their own attempts; staff may read any"""
    if caller.is_staff and not owner_only:
        return
    if caller.student_id is None or attempt.student_id != caller.student_id:
        raise AccessDeniedError()
