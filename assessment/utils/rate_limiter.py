"""
Rate limiting middleware for API endpoints
"""
import time
from collections import defaultdict
from fastapi import Request, HTTPException
from typing import Dict, Optional
import logging

import redis

from assessment.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window rate limiter

    Counters live in Redis (INCR + EXPIRE) so limits hold across workers.
    Without Redis, or when it fails mid-request, counting falls back to
    per-process memory.
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        redis_url: Optional[str] = None
    ):
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour

        # Storage: {client_id: [timestamp, ...]}
        self.minute_tracker: Dict[str, list] = defaultdict(list)
        self.hour_tracker: Dict[str, list] = defaultdict(list)

        self.redis_client = None
        if redis_url:
            try:
                self.redis_client = redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_connect_timeout=2
                )
                self.redis_client.ping()
            except redis.RedisError as e:
                logger.warning(f"Redis unavailable for rate limiting: {str(e)}. Using in-memory limits.")
                self.redis_client = None

    def _get_client_id(self, request: Request) -> str:
        """Extract client identifier from request"""
        student_id = request.headers.get("x-student-id")
        if student_id:
            return f"student:{student_id}"

        # Fallback to IP address
        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _cleanup_old_entries(self, tracker: Dict[str, list], window_seconds: int):
        """Remove entries older than window"""
        cutoff_time = time.time() - window_seconds

        for client_id in list(tracker.keys()):
            tracker[client_id] = [ts for ts in tracker[client_id] if ts > cutoff_time]

            if not tracker[client_id]:
                del tracker[client_id]

    def _count_redis(self, client_id: str, window_seconds: int) -> int:
        window = int(time.time() // window_seconds)
        key = f"ratelimit:{window_seconds}:{client_id}:{window}"

        pipe = self.redis_client.pipeline()
        pipe.incr(key)
        pipe.expire(key, window_seconds)
        count, _ = pipe.execute()
        return int(count)

    def _count_memory(self, client_id: str) -> tuple:
        current_time = time.time()

        self._cleanup_old_entries(self.minute_tracker, 60)
        self._cleanup_old_entries(self.hour_tracker, 3600)

        self.minute_tracker[client_id].append(current_time)
        self.hour_tracker[client_id].append(current_time)

        return len(self.minute_tracker[client_id]), len(self.hour_tracker[client_id])

    def _count(self, client_id: str) -> tuple:
        if self.redis_client:
            try:
                return self._count_redis(client_id, 60), self._count_redis(client_id, 3600)
            except redis.RedisError as e:
                logger.error(f"Rate limit counter error: {str(e)}")

        return self._count_memory(client_id)

    async def check_rate_limit(self, request: Request) -> None:
        """
        Check if request exceeds rate limits

        Raises:
            HTTPException: 429 if rate limit exceeded
        """
        client_id = self._get_client_id(request)
        minute_requests, hour_requests = self._count(client_id)

        if minute_requests > self.requests_per_minute:
            logger.warning(f"Rate limit exceeded (minute): {client_id}")
            raise HTTPException(
                status_code=429,
                detail={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Limit: {self.requests_per_minute} requests per minute",
                    "retry_after": 60
                }
            )

        if hour_requests > self.requests_per_hour:
            logger.warning(f"Rate limit exceeded (hour): {client_id}")
            raise HTTPException(
                status_code=429,
                detail={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Limit: {self.requests_per_hour} requests per hour",
                    "retry_after": 3600
                }
            )

        logger.debug(f"Rate limit check passed: {client_id} (minute: {minute_requests}, hour: {hour_requests})")


# Global instance
rate_limiter = RateLimiter(
    requests_per_minute=settings.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=settings.RATE_LIMIT_PER_HOUR,
    redis_url=settings.REDIS_URL
)
