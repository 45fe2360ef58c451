"""
Rate limiter backed by Redis.

Sliding window shared across instances. Limits:
- avatar upload signatures: 1/minute per user (production only)
"""
import time
from typing import Optional

import redis
from fastapi import Request

from app.core.config import REDIS_URL, is_production
from app.core.exceptions import RateLimitError
from app.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: Optional[redis.Redis] = None

AVATAR_UPLOAD_LIMIT = {"max": 1, "window": 60}
AVATAR_UPLOAD_MESSAGE = "Rate limit exceeded. Please wait before uploading again."


def get_redis() -> redis.Redis:
    """Get or create the Redis connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(REDIS_URL, decode_responses=True)
    return _redis_client


def set_redis(client: Optional[redis.Redis]) -> None:
    global _redis_client
    _redis_client = client


def check_rate_limit(
    key: str,
    max_requests: int,
    window_seconds: int,
) -> tuple[bool, int]:
    """
    Check a sliding-window limit and record the current request.

    Args:
        key: Unique key for this limit (e.g. "avatar_upload:auth0|123")
        max_requests: Maximum requests allowed in the window
        window_seconds: Window length in seconds

    Returns:
        Tuple of (is_allowed, remaining_requests)
    """
    redis_client = get_redis()
    now = time.time()
    redis_key = f"ratelimit:{key}"

    pipe = redis_client.pipeline()
    pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
    pipe.zcard(redis_key)
    pipe.zadd(redis_key, {str(now): now})
    pipe.expire(redis_key, window_seconds + 1)
    results = pipe.execute()
    current_count = results[1]

    remaining = max(0, max_requests - current_count - 1)
    return current_count < max_requests, remaining


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP, honoring the proxy headers set by the edge."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return None


def rate_limit_avatar_upload(user_id: str) -> None:
    """Throttle avatar signature requests. A soft limit, only enforced in production."""
    if not is_production():
        return

    allowed, _ = check_rate_limit(
        key=f"avatar_upload:{user_id}",
        max_requests=AVATAR_UPLOAD_LIMIT["max"],
        window_seconds=AVATAR_UPLOAD_LIMIT["window"],
    )
    if not allowed:
        logger.warning("Rate limit exceeded on avatar upload", user_id=user_id)
        raise RateLimitError(AVATAR_UPLOAD_MESSAGE, retry_after=AVATAR_UPLOAD_LIMIT["window"])
