"""Rate limiting for the customer auth API.

Credential-bearing endpoints (magic link, login, register, reset, Clerk)
use `auth_limit`; everything else gets RATE_LIMIT_API as the default.
"""

import logging
import os

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from portal_auth.core.config import settings

logger = logging.getLogger(__name__)

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
MEMORY_STORAGE = "memory://"
# Effectively unlimited; keeps the decorators active under test
UNLIMITED = "1000000/minute"


def auth_limit() -> str:
    """Limit string for credential-bearing endpoints."""
    if IS_TESTING or settings.RATE_LIMIT_AUTH <= 0:
        return UNLIMITED
    return f"{settings.RATE_LIMIT_AUTH}/minute"


def client_key(request: Request) -> str:
    """Bucket by client IP, using X-Forwarded-For only behind a trusted proxy."""
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def _storage_uri() -> str:
    """Redis when reachable (shared across workers), otherwise process memory."""
    if IS_TESTING:
        return MEMORY_STORAGE
    try:
        import redis

        redis.from_url(settings.REDIS_URL, socket_connect_timeout=1).ping()
    except Exception as e:
        logger.warning("Redis unavailable for rate limiting, using in-memory: %s", e)
        return MEMORY_STORAGE
    return settings.REDIS_URL


limiter = Limiter(
    key_func=client_key,
    storage_uri=_storage_uri(),
    default_limits=(
        [] if IS_TESTING or settings.RATE_LIMIT_API <= 0 else [f"{settings.RATE_LIMIT_API}/minute"]
    ),
)
