"""
First-run provisioning: role defaults, the seed admin account and an initial
invite code, so a fresh database can accept its first registration.

The seed admin password is stored in the legacy plaintext format and is
re-hashed to bcrypt the first time the admin logs in.
"""

import logging
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.config import settings
from book_editor.core.passwords import legacy_plaintext
from book_editor.models.iam import InviteCode, PasswordFormat, RoleDefault, User, UserRole

logger = logging.getLogger(__name__)

ROLE_DEFAULTS = {
    UserRole.ADMIN.value: (-1, -1),
    UserRole.USER.value: (
        settings.default_daily_token_limit,
        settings.default_monthly_token_limit,
    ),
}


async def ensure_role_defaults(db: AsyncSession) -> None:
    for role, (daily, monthly) in ROLE_DEFAULTS.items():
        if await db.get(RoleDefault, role) is None:
            db.add(
                RoleDefault(
                    role=role, daily_token_limit=daily, monthly_token_limit=monthly
                )
            )
    await db.commit()


async def ensure_defaults(db: AsyncSession) -> None:
    """Seed role defaults, and on an empty users table the admin + invite code.

    If *any* user already exists only the role defaults are checked, so the
    account seeding runs once on a fresh database.
    """
    await ensure_role_defaults(db)

    result = await db.execute(select(User).limit(1))
    if result.scalar_one_or_none() is not None:
        return

    password = settings.seed_admin_password
    generated = not password
    if generated:
        password = secrets.token_urlsafe(12)

    admin = User(
        username=settings.seed_admin_username,
        email=settings.seed_admin_email.strip().lower(),
        password_hash=legacy_plaintext(password),
        password_format=PasswordFormat.LEGACY_PLAINTEXT.value,
        role=UserRole.ADMIN.value,
        is_active=True,
        daily_token_limit=-1,
        monthly_token_limit=-1,
        failed_login_attempts=0,
    )
    db.add(admin)
    await db.flush()

    if settings.initial_invite_code:
        db.add(
            InviteCode(
                code=settings.initial_invite_code.strip().upper(),
                is_used=False,
                created_by=admin.user_id,
            )
        )
    await db.commit()

    if generated:
        logger.warning(
            "=== FIRST RUN: provisioned admin user ===\n"
            "  username:     %s\n"
            "  password:     %s\n"
            "Change the password after first login.",
            admin.username,
            password,
        )
    else:
        logger.info(f"=== FIRST RUN: provisioned admin user {admin.username} ===")
