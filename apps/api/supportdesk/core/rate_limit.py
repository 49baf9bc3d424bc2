"""Rate limiting configuration for the support desk API."""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from supportdesk.core.config import settings

# Shared counters through Redis when the backplane is configured,
# in-memory otherwise (dev/test mode).
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)
AI_LIMIT = f"{max(settings.RATE_LIMIT_AI, 1)}/minute"


def _storage_uri() -> str:
    if IS_TESTING or not settings.REDIS_URL:
        return "memory://"
    try:
        import redis

        client = redis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        client.ping()
        return settings.REDIS_URL
    except Exception as e:
        logging.warning(f"Redis unavailable for rate limiting, using in-memory: {e}")
        return "memory://"


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri(),
    default_limits=DEFAULT_LIMITS,
    enabled=not IS_TESTING,
)
