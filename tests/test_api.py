import inspect
import uuid
from datetime import timedelta

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from exam_engine.api.dependencies import build_attempt_service, get_cache_service
from exam_engine.database import get_db
from exam_engine.main import app
from exam_engine.models import QuestionType
from exam_engine.utils.cache import CacheService
from exam_engine.utils.clock import utcnow


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_service] = lambda: CacheService(None)
    yield TestClient(app)
    app.dependency_overrides.clear()


def student_headers(student_id=None):
    return {"X-Student-ID": str(student_id or uuid.uuid4())}


STAFF = {"X-User-Role": "teacher"}


def _correct_option(exam_question):
    return next(o.id for o in exam_question.question.options if o.is_correct)


def _single_choice(option_id):
    return {"kind": "single_choice", "selected_option_ids": [str(option_id)]}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_full_attempt_flow(client, seed_exam):
    exam = seed_exam()
    first_question = exam.exam_questions[0]
    headers = student_headers()

    started = client.post(f"/api/exams/{exam.id}/start", headers=headers)
    assert started.status_code == 200
    body = started.json()
    assert body["resumed"] is False
    assert len(body["questions"]) == 2
    assert all("is_correct" not in option for option in body["questions"][0]["options"])
    attempt_id = body["attempt"]["id"]

    resumed = client.post(f"/api/exams/{exam.id}/start", headers=headers)
    assert resumed.json()["resumed"] is True
    assert resumed.json()["attempt"]["id"] == attempt_id

    saved = client.post(
        f"/api/attempts/{attempt_id}/responses",
        json={"question_id": str(first_question.question_id), "answer": _single_choice(_correct_option(first_question))},
        headers=headers,
    )
    assert saved.status_code == 200
    assert saved.json()["is_attempted"] is True

    detail = client.get(f"/api/attempts/{attempt_id}", headers=headers).json()
    assert detail["attempt"]["attempted_questions"] == 1

    submitted = client.post(f"/api/attempts/{attempt_id}/submit", headers=headers)
    assert submitted.status_code == 200
    attempt = submitted.json()["attempt"]
    assert attempt["status"] == "submitted"
    assert attempt["marks_obtained"] == 4.0
    assert attempt["percentage"] == 50.0

    again = client.post(f"/api/attempts/{attempt_id}/submit", headers=headers)
    assert again.status_code == 409
    assert again.json()["error"] == "attempt_not_in_progress"

    result = client.get(f"/api/exams/{exam.id}/result", headers=headers)
    assert result.status_code == 200
    assert result.json()["best_marks"] == 4.0
    assert result.json()["is_passed"] is True

    review = client.get(f"/api/attempts/{attempt_id}/review", headers=headers)
    assert review.status_code == 200
    assert review.json()["items"][0]["question"]["options"][0]["is_correct"] is True

    mine = client.get(f"/api/exams/{exam.id}/my-attempts", headers=headers)
    assert [a["id"] for a in mine.json()] == [attempt_id]


def test_missing_identity_is_unauthorized(client, seed_exam):
    exam = seed_exam()
    response = client.post(f"/api/exams/{exam.id}/start")
    assert response.status_code == 401


def test_unknown_exam_is_not_found(client):
    response = client.post(f"/api/exams/{uuid.uuid4()}/start", headers=student_headers())
    assert response.status_code == 404
    assert response.json() == {"error": "not_found", "message": "Exam not found", "status_code": 404}


def test_ended_exam_is_gone(client, seed_exam):
    now = utcnow()
    exam = seed_exam(start_time=now - timedelta(hours=3), end_time=now - timedelta(hours=1))

    response = client.post(f"/api/exams/{exam.id}/start", headers=student_headers())

    assert response.status_code == 410
    assert response.json()["error"] == "exam_ended"


def test_access_code_comes_from_the_body(client, seed_exam):
    exam = seed_exam(access_code="CHEM-7")
    headers = student_headers()

    denied = client.post(f"/api/exams/{exam.id}/start", json={"access_code": "wrong"}, headers=headers)
    assert denied.status_code == 403
    assert denied.json()["error"] == "invalid_access_code"

    allowed = client.post(f"/api/exams/{exam.id}/start", json={"access_code": "CHEM-7"}, headers=headers)
    assert allowed.status_code == 200


def test_other_students_attempt_is_forbidden(client, seed_exam):
    exam = seed_exam()
    attempt_id = client.post(f"/api/exams/{exam.id}/start", headers=student_headers()).json()["attempt"]["id"]

    intruder = student_headers()
    assert client.get(f"/api/attempts/{attempt_id}", headers=intruder).status_code == 403
    assert client.post(f"/api/attempts/{attempt_id}/submit", headers=intruder).status_code == 403

    # Staff may read but not act on a student's behalf
    assert client.get(f"/api/attempts/{attempt_id}", headers=STAFF).status_code == 200


def test_answer_of_wrong_kind_is_rejected(client, seed_exam):
    exam = seed_exam()
    headers = student_headers()
    attempt_id = client.post(f"/api/exams/{exam.id}/start", headers=headers).json()["attempt"]["id"]
    question_id = str(exam.exam_questions[0].question_id)

    wrong_kind = client.post(
        f"/api/attempts/{attempt_id}/responses",
        json={"question_id": question_id, "answer": {"kind": "numerical", "value": 3.5}},
        headers=headers,
    )
    assert wrong_kind.status_code == 422
    assert wrong_kind.json()["error"] == "invalid_answer"

    unknown_kind = client.post(
        f"/api/attempts/{attempt_id}/responses",
        json={"question_id": question_id, "answer": {"kind": "essay", "text": "..."}},
        headers=headers,
    )
    assert unknown_kind.status_code == 422


def test_tab_switch_limit_auto_submits(client, seed_exam):
    exam = seed_exam(enable_tab_switch_detection=True, max_tab_switches=2)
    headers = student_headers()
    attempt_id = client.post(f"/api/exams/{exam.id}/start", headers=headers).json()["attempt"]["id"]

    first = client.post(f"/api/attempts/{attempt_id}/tab-switch", headers=headers).json()
    assert first["exceeded"] is False
    assert first["attempt"] is None

    second = client.post(f"/api/attempts/{attempt_id}/tab-switch", headers=headers).json()
    assert second["exceeded"] is True
    assert second["attempt"]["status"] == "auto_submitted"

    third = client.post(f"/api/attempts/{attempt_id}/tab-switch", headers=headers)
    assert third.status_code == 409


def test_review_can_be_disabled(client, seed_exam):
    exam = seed_exam(allow_review=False)
    headers = student_headers()
    attempt_id = client.post(f"/api/exams/{exam.id}/start", headers=headers).json()["attempt"]["id"]
    client.post(f"/api/attempts/{attempt_id}/submit", headers=headers)

    denied = client.get(f"/api/attempts/{attempt_id}/review", headers=headers)
    assert denied.status_code == 403
    assert denied.json()["error"] == "review_not_allowed"

    assert client.get(f"/api/attempts/{attempt_id}/review", headers=STAFF).status_code == 200


def test_staff_tools(client, seed_exam):
    exam = seed_exam(max_attempts=1)
    question = exam.exam_questions[0]

    for answered in (True, True, False):
        headers = student_headers()
        attempt_id = client.post(f"/api/exams/{exam.id}/start", headers=headers).json()["attempt"]["id"]
        if answered:
            client.post(
                f"/api/attempts/{attempt_id}/responses",
                json={"question_id": str(question.question_id), "answer": _single_choice(_correct_option(question))},
                headers=headers,
            )
        client.post(f"/api/attempts/{attempt_id}/submit", headers=headers)

    assert client.get(f"/api/exams/{exam.id}/attempts", headers=student_headers()).status_code == 403

    listing = client.get(f"/api/exams/{exam.id}/attempts", params={"limit": 2}, headers=STAFF)
    assert listing.status_code == 200
    assert listing.json()["total"] == 3
    assert len(listing.json()["attempts"]) == 2

    ranked = client.post(f"/api/exams/{exam.id}/calculate-ranks", headers={"X-User-Role": "admin"})
    assert ranked.status_code == 200
    assert [r["rank"] for r in ranked.json()["results"]] == [1, 1, 3]

    leaderboard = client.get(f"/api/exams/{exam.id}/leaderboard", params={"limit": 2}, headers=STAFF)
    assert leaderboard.status_code == 200
    entries = leaderboard.json()["entries"]
    assert [e["position"] for e in entries] == [1, 2]
    assert [e["rank"] for e in entries] == [1, 1]


def test_student_results_are_private(client, seed_exam):
    exam = seed_exam()
    student_id = uuid.uuid4()
    headers = student_headers(student_id)
    attempt_id = client.post(f"/api/exams/{exam.id}/start", headers=headers).json()["attempt"]["id"]
    client.post(f"/api/attempts/{attempt_id}/submit", headers=headers)

    own = client.get(f"/api/students/{student_id}/results", headers=headers)
    assert own.status_code == 200
    assert len(own.json()) == 1

    assert client.get(f"/api/students/{student_id}/results", headers=student_headers()).status_code == 403
    assert client.get(f"/api/students/{student_id}/results", headers=STAFF).status_code == 200


def test_numerical_answer_through_the_api(client, seed_exam):
    exam = seed_exam(
        [{"question_type": QuestionType.NUMERICAL, "options": (), "numerical_answer": 10.0, "numerical_tolerance": 0.5}]
    )
    headers = student_headers()
    attempt_id = client.post(f"/api/exams/{exam.id}/start", headers=headers).json()["attempt"]["id"]

    client.post(
        f"/api/attempts/{attempt_id}/responses",
        json={"question_id": str(exam.exam_questions[0].question_id), "answer": {"kind": "numerical", "value": 10.4}},
        headers=headers,
    )
    attempt = client.post(f"/api/attempts/{attempt_id}/submit", headers=headers).json()["attempt"]

    assert attempt["correct_answers"] == 1
    assert attempt["percentage"] == 100.0


def test_non_finite_numerical_answer_is_rejected(client, seed_exam):
    exam = seed_exam(
        [{"question_type": QuestionType.NUMERICAL, "options": (), "numerical_answer": 10.0, "numerical_tolerance": 0.5}]
    )
    headers = student_headers()
    attempt_id = client.post(f"/api/exams/{exam.id}/start", headers=headers).json()["attempt"]["id"]
    question_id = str(exam.exam_questions[0].question_id)

    # NaN is not valid JSON but Python's parser accepts it
    body = '{"question_id": "%s", "answer": {"kind": "numerical", "value": NaN}}' % question_id
    response = client.post(
        f"/api/attempts/{attempt_id}/responses",
        content=body,
        headers={**headers, "Content-Type": "application/json"},
    )
    assert response.status_code == 422

    detail = client.get(f"/api/attempts/{attempt_id}", headers=headers).json()
    assert detail["attempt"]["attempted_questions"] == 0


def test_handlers_run_in_the_threadpool():
    endpoints = [route.endpoint for route in app.routes if isinstance(route, APIRoute) and route.path.startswith("/api/")]

    assert endpoints
    assert not [e.__name__ for e in endpoints if inspect.iscoroutinefunction(e)]


def test_attempt_service_invalidates_the_leaderboard_on_finalize(db):
    class RecordingCache(CacheService):
        def __init__(self):
            super().__init__(None)
            self.invalidated = []

        def invalidate_leaderboard(self, exam_id):
            self.invalidated.append(exam_id)
            return True

    cache = RecordingCache()
    exam_id = uuid.uuid4()

    build_attempt_service(db, cache).notify_finalized(exam_id)

    assert cache.invalidated == [exam_id]
    assert build_attempt_service(db).on_finalized is None
