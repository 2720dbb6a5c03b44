"""
Access and refresh tokens.

Access tokens are short-lived HS256 JWTs verified without a database hit.
Refresh tokens are opaque random strings whose validity lives entirely in the
``sessions`` table, so they can be revoked instantly.
"""

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.config import get_jwt_secret, settings
from book_editor.models.iam.sessions import Session
from book_editor.utils import utcnow

ALGORITHM = "HS256"
REFRESH_TOKEN_BYTES = 48


class TokenError(Exception):
    pass


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


@dataclass(frozen=True)
class AccessTokenClaims:
    user_id: uuid.UUID
    username: str
    role: str


def issue_access_token(user, expires_delta: timedelta | None = None) -> str:
    now = utcnow()
    expire = now + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {
        "sub": str(user.user_id),
        "username": user.username,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(to_encode, get_jwt_secret(), algorithm=ALGORITHM)


def verify_access_token(token: str) -> AccessTokenClaims:
    try:
        payload = jwt.decode(token, get_jwt_secret(), algorithms=[ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired("Token expired") from exc
    except JWTError as exc:
        raise TokenInvalid("Invalid token") from exc

    try:
        return AccessTokenClaims(
            user_id=uuid.UUID(payload["sub"]),
            username=payload["username"],
            role=payload["role"],
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenInvalid("Invalid token") from exc


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def refresh_token_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(days=settings.refresh_token_expire_days)


async def issue_refresh_token(db: AsyncSession, user_id: uuid.UUID) -> str:
    """Create a session row for *user_id* and return the raw refresh token.

    The row is added to the caller's session; the caller owns the commit.
    """
    token = generate_refresh_token()
    db.add(
        Session(
            user_id=user_id,
            token_hash=hash_token(token),
            expires_at=refresh_token_expiry(),
        )
    )
    await db.flush()
    return token
