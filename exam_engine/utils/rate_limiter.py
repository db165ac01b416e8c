"""
Rate limiting for API endpoints
"""
import time
from collections import defaultdict, deque
from fastapi import Request, HTTPException
from typing import Callable, Deque, Dict, Tuple
import logging

logger = logging.getLogger(__name__)

STUDENT_HEADER = "X-Student-ID"


class RateLimiter:
    """
    In-memory sliding-window rate limiter

    Callers are identified by the gateway's student header, falling back
    to the client IP. Limits are per process.
    """

    def __init__(
        self,
        requests_per_minute: int = 120,
        requests_per_hour: int = 3000,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval: int = 60,
    ):
        self.windows: Tuple[Tuple[int, int], ...] = (
            (60, requests_per_minute),
            (3600, requests_per_hour),
        )
        self.longest = max(seconds for seconds, _ in self.windows)
        self.clock = clock
        self.cleanup_interval = cleanup_interval
        self.last_cleanup = clock()
        self.history: Dict[str, Deque[float]] = defaultdict(deque)

    def _get_client_id(self, request: Request) -> str:
        student_id = request.headers.get(STUDENT_HEADER)
        if student_id:
            return f"student:{student_id}"

        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _prune(self, history: Deque[float], now: float) -> None:
        while history and history[0] <= now - self.longest:
            history.popleft()

    def _cleanup_old_entries(self, now: float) -> None:
        """Remove clients with no requests inside the longest window"""
        for client_id in list(self.history.keys()):
            self._prune(self.history[client_id], now)

            # Remove empty entries
            if not self.history[client_id]:
                del self.history[client_id]

        self.last_cleanup = now

    def hit(self, client_id: str) -> None:
        """
        Record one request for client_id

        Raises:
            HTTPException: 429 if any window is exhausted
        """
        now = self.clock()
        if now - self.last_cleanup >= self.cleanup_interval:
            self._cleanup_old_entries(now)

        history = self.history[client_id]
        self._prune(history, now)

        for seconds, limit in self.windows:
            in_window = sum(1 for ts in history if ts > now - seconds)
            if in_window >= limit:
                logger.warning(f"Rate limit exceeded ({limit}/{seconds}s): {client_id}")
                raise HTTPException(
                    status_code=429,
                    detail={
                        "error": "rate_limit_exceeded",
                        "message": f"Too many requests. Limit: {limit} requests per {seconds} seconds",
                        "retry_after": seconds,
                    },
                )

        history.append(now)

    def tracked_clients(self) -> int:
        return len(self.history)

    async def check_rate_limit(self, request: Request) -> None:
        self.hit(self._get_client_id(request))
