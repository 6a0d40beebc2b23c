"""slowapi limiter shared by the app and the public invite preview route.

Counters live in Redis so limits hold across workers. If Redis cannot be
reached at startup the limiter degrades to per-process memory. Under
TESTING the limiter is disabled entirely.
"""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from careteam.core.config import settings

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")

DEFAULT_LIMITS = [f"{settings.RATE_LIMIT_API}/minute"] if settings.RATE_LIMIT_API > 0 else []
INVITE_PREVIEW_LIMIT = f"{max(settings.RATE_LIMIT_INVITE_PREVIEW, 1)}/minute"


def _storage_uri() -> str:
    if IS_TESTING:
        return "memory://"
    try:
        import redis

        redis.from_url(REDIS_URL, socket_connect_timeout=1).ping()
    except Exception as exc:
        logger.warning("Redis unavailable for rate limiting, using in-memory: %s", exc)
        return "memory://"
    return REDIS_URL


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri(),
    default_limits=[] if IS_TESTING else DEFAULT_LIMITS,
    enabled=not IS_TESTING,
)
