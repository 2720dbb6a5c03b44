"""
Authentication endpoints: register, login, refresh, me, logout.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.api.v1.helpers.authentication import AuthenticatedUser, require_auth
from book_editor.api.v1.helpers.rate_limit import limit_login, limit_register
from book_editor.api.v1.helpers.responses import message_response
from book_editor.core import auth_service
from book_editor.core.errors import NotFoundError
from book_editor.db.session import get_db
from book_editor.models.pydantic_models.core_models import (
    AuthResult,
    CamelModel,
    UserView,
)

router = APIRouter(prefix="/auth", tags=["Auth"])


# ── request / response schemas ────────────────────────────────────────────


class RegisterRequest(CamelModel):
    username: str | None = None
    email: str | None = None
    password: str | None = None
    invite_code: str | None = None


class LoginRequest(CamelModel):
    identifier: str | None = None
    password: str | None = None


class RefreshRequest(CamelModel):
    refresh_token: str | None = None


class ProfileResponse(CamelModel):
    user: UserView


# ── endpoints ─────────────────────────────────────────────────────────────


@router.post(
    "/register", response_model=AuthResult, status_code=status.HTTP_201_CREATED
)
@limit_register
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create an account with a single-use invite code."""
    return await auth_service.register(
        db,
        username=body.username,
        email=body.email,
        password=body.password,
        invite_code=body.invite_code,
    )


@router.post("/login", response_model=AuthResult)
@limit_login
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """Authenticate with email or username plus password."""
    return await auth_service.login(db, body.identifier, body.password)


@router.post("/refresh", response_model=AuthResult)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    """Rotate a refresh token into a new access/refresh pair."""
    return await auth_service.refresh(db, body.refresh_token)


@router.get("/me", response_model=ProfileResponse)
async def get_me(
    current_user: AuthenticatedUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
):
    profile = await auth_service.get_profile(db, current_user.user_id)
    if profile is None:
        raise NotFoundError("User")
    return ProfileResponse(user=profile)


async def _read_refresh_token(request: Request) -> str | None:
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    token = payload.get("refreshToken")
    return token if isinstance(token, str) else None


@router.post("/logout")
async def logout(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Revoke the presented refresh token. Always succeeds, whatever the body."""
    await auth_service.logout(db, await _read_refresh_token(request))
    return message_response("Logged out successfully")
