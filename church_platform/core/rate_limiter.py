"""Per-IP request limits for the authentication endpoints."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from church_platform.core.audit_events import RATE_LIMITED
from church_platform.core.config import settings

logger = logging.getLogger("church_platform")

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
)

login_limit = limiter.limit(
    settings.LOGIN_RATE_LIMIT,
    error_message="Too many login attempts, please try again later",
)
signup_limit = limiter.limit(
    settings.SIGNUP_RATE_LIMIT,
    error_message="Too many signup attempts, please try again later",
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render a 429 and tell the audit recorder to write ``system.rate.limit``."""
    logger.warning(
        "Rate limit hit on %s %s from %s",
        request.method, request.url.path, get_remote_address(request),
    )
    request.state.audit_override = {
        "action": RATE_LIMITED,
        "resource_type": "system",
        "reason": "Rate limit exceeded",
    }
    return JSONResponse(
        status_code=429,
        content={"success": False, "message": exc.detail},
    )
