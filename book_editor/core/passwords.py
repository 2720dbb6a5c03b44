"""
Password hashing.

bcrypt for everything written by this service. Seed accounts created before
hashing existed carry a ``plain:<value>`` marker and are flagged
``PasswordFormat.LEGACY_PLAINTEXT``; they verify by constant-time comparison
and must be re-hashed on the first successful login.
"""

import hmac

import bcrypt
from fastapi.concurrency import run_in_threadpool

from book_editor.config import settings
from book_editor.models.iam.enums import PasswordFormat

LEGACY_PLAINTEXT_PREFIX = "plain:"


def hash_password(plain_password: str) -> str:
    return bcrypt.hashpw(
        plain_password.encode("utf-8"), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    ).decode("utf-8")


def detect_format(stored: str, declared: str | None = None) -> PasswordFormat:
    if declared:
        return PasswordFormat(declared)
    if stored.startswith(LEGACY_PLAINTEXT_PREFIX):
        return PasswordFormat.LEGACY_PLAINTEXT
    return PasswordFormat.BCRYPT


def verify_password(
    plain_password: str, stored: str, password_format: str | None = None
) -> bool:
    if not stored or plain_password is None:
        return False

    fmt = detect_format(stored, password_format)
    if fmt is PasswordFormat.LEGACY_PLAINTEXT:
        expected = stored
        if expected.startswith(LEGACY_PLAINTEXT_PREFIX):
            expected = expected[len(LEGACY_PLAINTEXT_PREFIX):]
        return hmac.compare_digest(
            plain_password.encode("utf-8"), expected.encode("utf-8")
        )

    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), stored.encode("utf-8"))
    except ValueError:
        # malformed hash
        return False


def legacy_plaintext(value: str) -> str:
    """Encode a seed password in the legacy marker format."""
    return f"{LEGACY_PLAINTEXT_PREFIX}{value}"


async def hash_password_async(plain_password: str) -> str:
    return await run_in_threadpool(hash_password, plain_password)


async def verify_password_async(
    plain_password: str, stored: str, password_format: str | None = None
) -> bool:
    return await run_in_threadpool(
        verify_password, plain_password, stored, password_format
    )
