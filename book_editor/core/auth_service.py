"""
Authentication service: register, login, refresh, logout.

SECURITY DESIGN
- Passwords hashed with bcrypt, always off the event loop and before any
  write transaction is opened.
- Access tokens: 15-minute JWTs. Refresh tokens: opaque, 7 days, stored as
  SHA-256 in ``sessions`` and rotated on every refresh.
- Lockout after ``max_failed_login_attempts`` failures (see account_guard).
- Registration consumes an invite code in the same transaction that creates
  the user; the code is marked with a conditional UPDATE so two concurrent
  registrations can never both spend it.
- Legacy ``plain:`` seed passwords are re-hashed on the first good login.
"""

import logging
import re
import uuid

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.config import settings
from book_editor.core import account_guard
from book_editor.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    RateLimitError,
    ValidationError,
)
from book_editor.core.passwords import hash_password_async, verify_password_async
from book_editor.core.tokens import hash_token, issue_access_token, issue_refresh_token
from book_editor.models.iam import (
    InviteCode,
    PasswordFormat,
    RoleDefault,
    Session,
    User,
    UserRole,
)
from book_editor.models.pydantic_models.core_models import AuthResult, UserView
from book_editor.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 254
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72

INVALID_INVITE_MESSAGE = "Invalid or already used invite code"
DUPLICATE_ACCOUNT_MESSAGE = "An account with this email or username already exists"


# ── lookups ───────────────────────────────────────────────────────────────


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    """Fetch a user straight from the database, bypassing the identity map."""
    result = await db.execute(
        select(User)
        .where(User.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_by_identifier(db: AsyncSession, identifier: str) -> User | None:
    ident = identifier.strip().lower()
    result = await db.execute(
        select(User)
        .where(or_(func.lower(User.email) == ident, func.lower(User.username) == ident))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_role_limits(db: AsyncSession, role: str) -> tuple[int, int]:
    role_default = await db.get(RoleDefault, role)
    if role_default is not None:
        return role_default.daily_token_limit, role_default.monthly_token_limit
    if role == UserRole.ADMIN.value:
        return -1, -1
    return settings.default_daily_token_limit, settings.default_monthly_token_limit


# ── validation ────────────────────────────────────────────────────────────


def validate_password_strength(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least 8 characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError("Password must be at most 72 bytes")
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValidationError("Password must contain at least one number")


def _normalize_registration(
    username: str | None,
    email: str | None,
    password: str | None,
    invite_code: str | None,
) -> tuple[str, str, str]:
    if not username or not email or not password or not invite_code:
        raise ValidationError("All fields are required")

    normalized_username = username.strip()
    normalized_email = email.strip().lower()
    normalized_code = invite_code.strip().upper()

    if not 3 <= len(normalized_username) <= 30:
        raise ValidationError("Username must be 3-30 characters")
    if not USERNAME_RE.match(normalized_username):
        raise ValidationError(
            "Username may only contain letters, numbers, hyphens, and underscores"
        )
    if not EMAIL_RE.match(normalized_email):
        raise ValidationError("Invalid email format")
    if len(normalized_email) > MAX_EMAIL_LENGTH:
        raise ValidationError("Email address too long (max 254 characters)")
    validate_password_strength(password)

    return normalized_username, normalized_email, normalized_code


# ── operations ────────────────────────────────────────────────────────────


async def _issue_pair(db: AsyncSession, user: User) -> tuple[str, str]:
    access_token = issue_access_token(user)
    refresh_token = await issue_refresh_token(db, user.user_id)
    return access_token, refresh_token


async def register(
    db: AsyncSession,
    username: str | None,
    email: str | None,
    password: str | None,
    invite_code: str | None,
) -> AuthResult:
    normalized_username, normalized_email, normalized_code = _normalize_registration(
        username, email, password, invite_code
    )

    password_hash = await hash_password_async(password)

    try:
        code_row = (
            await db.execute(
                select(InviteCode.invite_code_id).where(
                    InviteCode.code == normalized_code,
                    InviteCode.is_used.is_(False),
                )
            )
        ).first()
        if code_row is None:
            raise ValidationError(INVALID_INVITE_MESSAGE)

        existing = (
            await db.execute(
                select(User.user_id)
                .where(
                    or_(
                        func.lower(User.email) == normalized_email,
                        func.lower(User.username) == normalized_username.lower(),
                    )
                )
                .limit(1)
            )
        ).first()
        if existing is not None:
            raise ConflictError(DUPLICATE_ACCOUNT_MESSAGE)

        daily_limit, monthly_limit = await get_role_limits(db, UserRole.USER.value)
        user = User(
            username=normalized_username,
            email=normalized_email,
            password_hash=password_hash,
            password_format=PasswordFormat.BCRYPT.value,
            role=UserRole.USER.value,
            is_active=True,
            daily_token_limit=daily_limit,
            monthly_token_limit=monthly_limit,
            failed_login_attempts=0,
        )
        db.add(user)
        await db.flush()

        marked = await db.execute(
            update(InviteCode)
            .where(
                InviteCode.code == normalized_code,
                InviteCode.is_used.is_(False),
            )
            .values(is_used=True, used_by=user.user_id, used_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if marked.rowcount != 1:
            # lost a race against another registration using the same code
            raise ValidationError(INVALID_INVITE_MESSAGE)

        access_token, refresh_token = await _issue_pair(db, user)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Registration conflict on unique constraint")
        raise ConflictError(DUPLICATE_ACCOUNT_MESSAGE)
    except Exception:
        await db.rollback()
        raise

    await db.refresh(user)
    logger.info(f"Registered user {user.user_id} with invite code {normalized_code}")
    return AuthResult(
        user=UserView.from_user(user),
        access_token=access_token,
        refresh_token=refresh_token,
    )


async def login(
    db: AsyncSession, identifier: str | None, password: str | None
) -> AuthResult:
    if not identifier or not password:
        raise ValidationError("Email/username and password are required")

    user = await find_by_identifier(db, identifier)
    if user is None:
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        raise AuthorizationError("Account is deactivated")

    try:
        account_guard.check_lockout(user)
    except RateLimitError:
        logger.warning(f"Login rejected for locked account {user.user_id}")
        raise

    stored_format = user.password_format
    is_valid = await verify_password_async(password, user.password_hash, stored_format)
    if not is_valid:
        locked = account_guard.register_failure(user)
        await db.commit()
        if locked:
            logger.warning(
                f"Account {user.user_id} locked after {user.failed_login_attempts} failed attempts"
            )
        raise AuthenticationError("Invalid credentials")

    if stored_format == PasswordFormat.LEGACY_PLAINTEXT.value:
        user.password_hash = await hash_password_async(password)
        user.password_format = PasswordFormat.BCRYPT.value
        logger.info(f"Migrated legacy password for user {user.user_id} to bcrypt")

    account_guard.register_success(user)
    user.last_login_at = utcnow()
    await db.commit()

    # Tokens are minted from the row as it is now, not the copy loaded above,
    # so concurrent role/limit changes land in the new claims.
    fresh_user = await get_user_by_id(db, user.user_id)
    if fresh_user is None or not fresh_user.is_active:
        raise AuthenticationError("Invalid credentials")

    try:
        access_token, refresh_token = await _issue_pair(db, fresh_user)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return AuthResult(
        user=UserView.from_user(fresh_user),
        access_token=access_token,
        refresh_token=refresh_token,
    )


async def refresh(db: AsyncSession, refresh_token: str | None) -> AuthResult:
    if not refresh_token or not isinstance(refresh_token, str):
        raise ValidationError("Refresh token is required")

    token_hash = hash_token(refresh_token)
    session = (
        await db.execute(
            select(Session)
            .where(Session.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if session is None:
        raise AuthenticationError("Invalid refresh token", code="TOKEN_INVALID")

    user_id = session.user_id
    if as_utc(session.expires_at) < utcnow():
        await db.execute(delete(Session).where(Session.token_hash == token_hash))
        await db.commit()
        raise AuthenticationError("Refresh token expired", code="TOKEN_EXPIRED")

    user = await get_user_by_id(db, user_id)
    if user is None or not user.is_active:
        await db.execute(delete(Session).where(Session.token_hash == token_hash))
        await db.commit()
        raise AuthenticationError("User not found or deactivated", code="TOKEN_INVALID")

    try:
        deleted = await db.execute(
            delete(Session).where(Session.token_hash == token_hash)
        )
        if deleted.rowcount == 0:
            # Another request rotated this token between our read and delete.
            # Its replacement already exists; re-read the user and hand this
            # caller its own pair instead of forcing a re-login.
            logger.info(f"Concurrent refresh rotation for user {user_id}")
            user = await get_user_by_id(db, user_id)
            if user is None or not user.is_active:
                raise AuthenticationError(
                    "User not found or deactivated", code="TOKEN_INVALID"
                )
        access_token, new_refresh_token = await _issue_pair(db, user)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return AuthResult(
        user=UserView.from_user(user),
        access_token=access_token,
        refresh_token=new_refresh_token,
    )


async def logout(db: AsyncSession, refresh_token: str | None) -> None:
    """Revoke a refresh token. Unknown or malformed tokens are a silent no-op."""
    if not refresh_token or not isinstance(refresh_token, str):
        return
    try:
        await db.execute(
            delete(Session).where(Session.token_hash == hash_token(refresh_token))
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Logout could not delete session: {e}")


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> UserView | None:
    user = await get_user_by_id(db, user_id)
    if user is None:
        return None
    return UserView.from_user(user)
