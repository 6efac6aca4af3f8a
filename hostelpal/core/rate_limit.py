"""Rate limiting configuration for the HostelPal API."""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from hostelpal.core.config import settings
from hostelpal.core.redis_client import get_redis_url

logger = logging.getLogger(__name__)

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)
AI_LIMIT = f"{max(settings.RATE_LIMIT_AI, 1)}/minute"


def _build_limiter() -> Limiter:
    redis_url = get_redis_url()
    if IS_TESTING or not redis_url:
        return Limiter(
            key_func=get_remote_address,
            storage_uri="memory://",
            default_limits=DEFAULT_LIMITS,
            enabled=not IS_TESTING,
        )

    # Try Redis, fall back to memory if connection fails
    try:
        import redis

        r = redis.from_url(redis_url, socket_connect_timeout=1)
        r.ping()
        return Limiter(
            key_func=get_remote_address,
            storage_uri=redis_url,
            default_limits=DEFAULT_LIMITS,
        )
    except Exception as e:
        logger.warning(f"Redis unavailable for rate limiting, using in-memory: {e}")
        return Limiter(
            key_func=get_remote_address,
            storage_uri="memory://",
            default_limits=DEFAULT_LIMITS,
        )


limiter = _build_limiter()
