"""
Redis cache utility for leaderboard reads
"""
import redis
import json
import logging
from typing import Optional, Any

logger = logging.getLogger(__name__)


class CacheService:
    """
    Redis-backed JSON cache

    A cache that cannot reach Redis disables itself; every call then
    behaves like a miss.
    """

    def __init__(self, redis_url: Optional[str] = None, default_ttl: int = 60):
        self.default_ttl = default_ttl
        self.redis_client = None

        if not redis_url:
            logger.info("Redis URL not configured. Caching disabled.")
            return

        try:
            self.redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5
            )
            # Test connection
            self.redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning(f"Redis connection failed: {str(e)}. Caching disabled.")
            self.redis_client = None

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    @staticmethod
    def leaderboard_key(exam_id: str, limit: int) -> str:
        return f"leaderboard:{exam_id}:{limit}"

    def get(self, key: str) -> Optional[Any]:
        """Return the cached JSON value, or None on miss or error"""
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            if value:
                logger.debug(f"Cache hit: {key}")
                return json.loads(value)
            logger.debug(f"Cache miss: {key}")
            return None
        except Exception as e:
            logger.error(f"Cache get error: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON-serializable value with a TTL (seconds)"""
        if not self.redis_client:
            return False

        try:
            ttl = ttl or self.default_ttl
            self.redis_client.setex(key, ttl, json.dumps(value, default=str))
            logger.debug(f"Cache set: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error: {str(e)}")
            return False

    def invalidate_leaderboard(self, exam_id: str) -> bool:
        """Drop every cached leaderboard page of an exam"""
        if not self.redis_client:
            return False

        try:
            keys = list(self.redis_client.scan_iter(match=f"leaderboard:{exam_id}:*"))
            if keys:
                self.redis_client.delete(*keys)
                logger.info(f"Cleared {len(keys)} leaderboard cache entries for exam {exam_id}")
            return True
        except Exception as e:
            logger.error(f"Cache invalidate error: {str(e)}")
            return False
