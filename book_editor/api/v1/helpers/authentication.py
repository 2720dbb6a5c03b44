"""
Request gate: FastAPI dependencies that authenticate a bearer access token,
enforce the admin role and the caller's token quota.

The user row is re-read on every request. The role embedded in the token is
ignored, so a downgrade or deactivation by an admin applies to the very next
call rather than when the 15-minute token runs out.

A database failure while resolving identity is a 500, never a 401: clients
must not be told "log in again" when the store is down.
"""

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.core.auth_service import get_user_by_id
from book_editor.core.circuit_breaker import CircuitBreaker
from book_editor.core.editor_client import EditorClient
from book_editor.core.errors import AuthenticationError, AuthorizationError, InternalError
from book_editor.core.quota import enforce_quota
from book_editor.core.tokens import TokenExpired, TokenInvalid, verify_access_token
from book_editor.db.session import get_db
from book_editor.models.iam import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: uuid.UUID
    username: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


async def _resolve_user(token: str, db: AsyncSession) -> AuthenticatedUser:
    try:
        claims = verify_access_token(token)
    except TokenExpired:
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED")
    except TokenInvalid:
        raise AuthenticationError("Invalid token", code="TOKEN_INVALID")

    try:
        user = await get_user_by_id(db, claims.user_id)
    except SQLAlchemyError as e:
        logger.error(f"User lookup failed during authentication: {e}", exc_info=True)
        raise InternalError("Authentication service error") from e

    if user is None or not user.is_active:
        raise AuthenticationError("Account not found or deactivated")

    return AuthenticatedUser(user_id=user.user_id, username=user.username, role=user.role)


async def require_auth(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    token = extract_bearer_token(request)
    if token is None:
        raise AuthenticationError("Authentication required")
    current_user = await _resolve_user(token, db)
    request.state.user = current_user
    return current_user


async def require_admin(
    current_user: AuthenticatedUser = Depends(require_auth),
) -> AuthenticatedUser:
    if not current_user.is_admin:
        raise AuthorizationError("Admin access required")
    return current_user


async def optional_auth(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser | None:
    """Attach the caller if a valid token is present; otherwise anonymous."""
    token = extract_bearer_token(request)
    if token is None:
        return None
    try:
        current_user = await _resolve_user(token, db)
    except AuthenticationError:
        return None
    except InternalError:
        # already logged with the underlying error
        return None
    request.state.user = current_user
    return current_user


async def require_quota(
    current_user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    try:
        await enforce_quota(db, current_user.user_id)
    except SQLAlchemyError as e:
        logger.error(f"Quota check failed for user {current_user.user_id}: {e}", exc_info=True)
        raise InternalError("Failed to check token limits") from e
    return current_user


def get_circuit_breaker(request: Request) -> CircuitBreaker:
    return request.app.state.circuit_breaker


def get_editor_client(request: Request) -> EditorClient:
    return request.app.state.editor_client
