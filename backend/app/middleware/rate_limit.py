"""Rate limiting middleware for API protection"""
import hashlib

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings


def get_identifier(request: Request) -> str:
    """
    Get identifier for rate limiting

    Priority:
    1. Admin session cookie (one bucket per browser session)
    2. IP address (login and other unauthenticated calls)
    """
    session_cookie = request.cookies.get(settings.ADMIN_AUTH_COOKIE_NAME)
    if session_cookie:
        digest = hashlib.sha256(session_cookie.encode()).hexdigest()[:16]
        return f"session:{digest}"

    return get_remote_address(request)


# Create limiter instance
limiter = Limiter(
    key_func=get_identifier,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


# Rate limit configurations for different endpoints
RATE_LIMITS = {
    # Credential checks share one budget
    "login": settings.AUTH_RATE_LIMIT,
    "step_up": settings.AUTH_RATE_LIMIT,
}


def get_rate_limit(endpoint: str) -> str:
    """Get rate limit for specific endpoint"""
    return RATE_LIMITS.get(endpoint, settings.RATE_LIMIT_DEFAULT[0])
