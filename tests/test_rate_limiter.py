import pytest
from fastapi import HTTPException
from starlette.requests import Request

from exam_engine.utils.rate_limiter import RateLimiter


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _request(headers=None, client=("10.1.2.3", 50000)):
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw_headers, "client": client})


def test_minute_window_blocks_and_recovers():
    clock = FakeMonotonic()
    limiter = RateLimiter(requests_per_minute=2, requests_per_hour=100, clock=clock)

    limiter.hit("student:a")
    limiter.hit("student:a")
    with pytest.raises(HTTPException) as exc_info:
        limiter.hit("student:a")

    assert exc_info.value.status_code == 429
    assert exc_info.value.detail["retry_after"] == 60

    clock.now += 61
    limiter.hit("student:a")


def test_hour_window_outlasts_minute_window():
    clock = FakeMonotonic()
    limiter = RateLimiter(requests_per_minute=2, requests_per_hour=3, clock=clock)

    for _ in range(3):
        limiter.hit("ip:10.0.0.1")
        clock.now += 61

    with pytest.raises(HTTPException) as exc_info:
        limiter.hit("ip:10.0.0.1")
    assert exc_info.value.detail["retry_after"] == 3600


def test_clients_are_limited_independently():
    limiter = RateLimiter(requests_per_minute=1, requests_per_hour=10, clock=FakeMonotonic())

    limiter.hit("student:a")
    limiter.hit("student:b")
    with pytest.raises(HTTPException):
        limiter.hit("student:a")


def test_client_identity_prefers_student_header():
    limiter = RateLimiter()

    assert limiter._get_client_id(_request({"X-Student-ID": "abc"})) == "student:abc"
    assert limiter._get_client_id(_request()) == "ip:10.1.2.3"
    assert limiter._get_client_id(_request(client=None)) == "ip:unknown"


def test_idle_clients_are_forgotten():
    clock = FakeMonotonic()
    limiter = RateLimiter(requests_per_minute=5, requests_per_hour=100, clock=clock)

    for n in range(1000):
        limiter.hit(f"ip:10.0.{n // 256}.{n % 256}")
    assert limiter.tracked_clients() == 1000

    clock.now += 2 * 3600
    limiter.hit("student:late")

    assert limiter.tracked_clients() == 1


def test_recent_clients_survive_cleanup():
    clock = FakeMonotonic()
    limiter = RateLimiter(requests_per_minute=1, requests_per_hour=100, clock=clock, cleanup_interval=60)

    limiter.hit("student:a")
    clock.now += 30
    limiter.hit("student:b")
    clock.now += 40
    limiter.hit("student:c")

    assert limiter.tracked_clients() == 3
    with pytest.raises(HTTPException):
        limiter.hit("student:b")
