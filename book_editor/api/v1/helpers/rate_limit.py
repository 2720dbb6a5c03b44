"""
Per-client request limits on the unauthenticated auth endpoints.

Login and registration are throttled per client IP to slow down password
guessing and invite-code enumeration. The account lockout in
``core/account_guard.py`` protects a single account; these limits protect
the endpoints as a whole.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from book_editor.api.v1.helpers.responses import error_response
from book_editor.config import settings

logger = logging.getLogger(__name__)

LOGIN_LIMIT_MESSAGE = "Too many login attempts. Please try again later."
REGISTER_LIMIT_MESSAGE = "Too many registration attempts. Please try again later."


def client_identifier(request: Request) -> str:
    """Client IP, honouring the first hop of X-Forwarded-For behind a proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=client_identifier,
    storage_uri=settings.rate_limit_storage_uri,
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)


def limit_login(func):
    return limiter.limit(settings.login_rate_limit, error_message=LOGIN_LIMIT_MESSAGE)(func)


def limit_register(func):
    return limiter.limit(
        settings.register_rate_limit, error_message=REGISTER_LIMIT_MESSAGE
    )(func)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    logger.warning(
        f"Rate limit exceeded: {client_identifier(request)} on "
        f"{request.method} {request.url.path}"
    )
    return error_response(exc.detail, "RATE_LIMITED", status.HTTP_429_TOO_MANY_REQUESTS)
