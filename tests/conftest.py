import os
import random
import sys
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from exam_engine.database import Base
from exam_engine.models import Exam, ExamQuestion, ExamStatus, Question, QuestionOption, QuestionType
from exam_engine.schemas.catalog import ExamConfig, ExamQuestionEntry, OptionDefinition, QuestionDefinition
from exam_engine.services.attempt_service import ExamAttemptService
from exam_engine.services.attempt_store import SqlAlchemyAttemptStore
from exam_engine.services.catalog import ExamCatalog, compute_total_marks
from exam_engine.utils.clock import utcnow


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeCatalog(ExamCatalog):
    """In-memory exam catalog; exams open five minutes before 'now' and run two hours"""

    def __init__(self, clock):
        self.clock = clock
        self.exams = {}
        self.entries = defaultdict(list)

    def add_exam(self, **overrides) -> ExamConfig:
        now = self.clock()
        fields = dict(
            id=uuid.uuid4(),
            title="Physics Mock Test",
            status=ExamStatus.LIVE,
            duration_minutes=60,
            start_time=now - timedelta(minutes=5),
            end_time=now + timedelta(hours=2),
            max_attempts=1,
        )
        fields.update(overrides)
        exam = ExamConfig(**fields)
        self.exams[exam.id] = exam
        return exam

    def add_question(
        self,
        exam,
        question_type=QuestionType.SINGLE_CHOICE,
        options=(True, False, False, False),
        numerical_answer=None,
        numerical_tolerance=None,
        positive_marks=4.0,
        negative_marks=1.0,
        partial_marks_allowed=False,
        exam_positive_marks=None,
        exam_negative_marks=None,
    ) -> ExamQuestionEntry:
        position = len(self.entries[exam.id])
        question = QuestionDefinition(
            id=uuid.uuid4(),
            question_text=f"Question {position + 1}",
            question_type=question_type,
            options=[
                OptionDefinition(
                    id=uuid.uuid4(),
                    option_text=f"Option {index + 1}",
                    is_correct=is_correct,
                    sequence_order=index,
                )
                for index, is_correct in enumerate(options)
            ],
            numerical_answer=numerical_answer,
            numerical_tolerance=numerical_tolerance,
            explanation=f"Worked solution {position + 1}",
            positive_marks=positive_marks,
            negative_marks=negative_marks,
            partial_marks_allowed=partial_marks_allowed,
        )
        entry = ExamQuestionEntry(
            id=uuid.uuid4(),
            sequence_order=position,
            positive_marks=exam_positive_marks,
            negative_marks=exam_negative_marks,
            question=question,
        )
        self.entries[exam.id].append(entry)
        return entry

    def get_exam(self, exam_id):
        exam = self.exams.get(exam_id)
        if exam is None:
            return None
        if exam.total_marks is None:
            return exam.model_copy(update={"total_marks": compute_total_marks(self.entries[exam_id])})
        return exam

    def get_exam_questions(self, exam_id):
        return list(self.entries.get(exam_id, []))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def catalog(clock):
    return FakeCatalog(clock)


@pytest.fixture
def make_service(catalog, clock):
    def _make(db, store=None, on_finalized=None):
        return ExamAttemptService(
            store=store or SqlAlchemyAttemptStore(db),
            catalog=catalog,
            clock=clock,
            rng=random.Random(1234),
            on_finalized=on_finalized,
        )

    return _make


@pytest.fixture
def service(db, make_service):
    return make_service(db)


@pytest.fixture
def seed_exam(db):
    """Persist an exam with its questions in the catalog tables"""

    def _seed(questions=None, **overrides):
        now = utcnow()
        fields = dict(
            title="Chemistry Unit Test",
            status=ExamStatus.LIVE,
            duration_minutes=60,
            start_time=now - timedelta(minutes=5),
            end_time=now + timedelta(hours=2),
            max_attempts=1,
        )
        fields.update(overrides)
        exam = Exam(**fields)
        db.add(exam)
        db.flush()

        rows = questions or [{}, {}]
        for position, columns in enumerate(rows):
            columns = dict(columns)
            options = columns.pop("options", (True, False, False, False))
            exam_positive_marks = columns.pop("exam_positive_marks", None)
            exam_negative_marks = columns.pop("exam_negative_marks", None)
            sequence_order = columns.pop("sequence_order", position)
            columns.setdefault("question_type", QuestionType.SINGLE_CHOICE)

            question = Question(question_text=f"Question {position + 1}", **columns)
            db.add(question)
            db.flush()

            for index, is_correct in enumerate(options):
                db.add(
                    QuestionOption(
                        question_id=question.id,
                        option_text=f"Option {index + 1}",
                        is_correct=is_correct,
                        sequence_order=index,
                    )
                )

            db.add(
                ExamQuestion(
                    exam_id=exam.id,
                    question_id=question.id,
                    positive_marks=exam_positive_marks,
                    negative_marks=exam_negative_marks,
                    sequence_order=sequence_order,
                )
            )

        db.commit()
        return exam

    return _seed
