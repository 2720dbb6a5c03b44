"""
Admin management: users, invite codes and per-role default limits.

Every route requires the admin role. Admins cannot change their own role,
deactivate themselves, or restrict their own token limits to 0.
"""

import logging
import secrets
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from book_editor.api.v1.endpoints.usage import build_user_usage
from book_editor.api.v1.helpers.authentication import AuthenticatedUser, require_admin
from book_editor.config import settings
from book_editor.core.auth_service import get_user_by_id
from book_editor.core.errors import NotFoundError, ValidationError
from book_editor.db.session import get_db
from book_editor.models.iam import InviteCode, RoleDefault, User, UserRole
from book_editor.models.pydantic_models.core_models import (
    CamelModel,
    InviteCodeView,
    RoleDefaultView,
    UserView,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

VALID_ROLES = [role.value for role in UserRole]


# ── request schemas ───────────────────────────────────────────────────────


class UserUpdateRequest(CamelModel):
    role: str | None = None
    is_active: bool | None = None
    daily_token_limit: int | None = None
    monthly_token_limit: int | None = None


class RoleDefaultUpdateRequest(CamelModel):
    daily_token_limit: int | None = None
    monthly_token_limit: int | None = None


# ── helpers ───────────────────────────────────────────────────────────────


def validate_token_limit(value: int, window: str) -> int:
    if value < -1:
        raise ValidationError(
            f"{window} token limit must be -1 (unlimited), 0 (restricted), or a positive number"
        )
    if value > settings.max_token_limit:
        raise ValidationError(
            f"{window} token limit cannot exceed {settings.max_token_limit:,}"
        )
    return value


def _limit_fields(request) -> dict:
    fields = {}
    if request.daily_token_limit is not None:
        fields["daily_token_limit"] = validate_token_limit(
            request.daily_token_limit, "Daily"
        )
    if request.monthly_token_limit is not None:
        fields["monthly_token_limit"] = validate_token_limit(
            request.monthly_token_limit, "Monthly"
        )
    return fields


# ── users ─────────────────────────────────────────────────────────────────


@router.get("/users")
async def list_users(
    current_user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """All users with their current daily and monthly usage."""
    users = await build_user_usage(db)
    return {"users": [u.model_dump(mode="json", by_alias=True) for u in users]}


@router.put("/users/{user_id}")
async def update_user(
    user_id: uuid.UUID,
    request: UserUpdateRequest,
    current_user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    target = await get_user_by_id(db, user_id)
    if target is None:
        raise NotFoundError("User")

    if current_user.user_id == target.user_id:
        if request.role is not None and request.role != target.role:
            raise ValidationError("Cannot change your own role")
        if request.is_active is False:
            raise ValidationError("Cannot deactivate your own account")
        if request.daily_token_limit == 0:
            raise ValidationError("Cannot set your own daily limit to restricted (0)")
        if request.monthly_token_limit == 0:
            raise ValidationError(
                "Cannot set your own monthly limit to restricted (0)"
            )

    fields = {}
    if request.role is not None:
        if request.role not in VALID_ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(VALID_ROLES)}")
        fields["role"] = request.role
    if request.is_active is not None:
        fields["is_active"] = request.is_active
    fields.update(_limit_fields(request))

    if not fields:
        raise ValidationError("No fields to update")

    for key, value in fields.items():
        setattr(target, key, value)
    await db.commit()
    await db.refresh(target)

    logger.info(
        f"Admin {current_user.user_id} updated user {target.user_id}: {sorted(fields)}"
    )
    return {"user": UserView.from_user(target).model_dump(mode="json", by_alias=True)}


# ── invite codes ──────────────────────────────────────────────────────────


def _invite_view(code: InviteCode, usernames: dict) -> InviteCodeView:
    return InviteCodeView(
        id=code.invite_code_id,
        code=code.code,
        is_used=code.is_used,
        created_by=usernames.get(code.created_by),
        used_by=usernames.get(code.used_by),
        created_at=code.created_at,
        used_at=code.used_at,
    )


@router.get("/invite-codes")
async def list_invite_codes(
    current_user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    codes = (
        (
            await db.execute(
                select(InviteCode)
                .order_by(InviteCode.created_at.desc())
                .execution_options(populate_existing=True)
            )
        )
        .scalars()
        .all()
    )
    usernames = dict((await db.execute(select(User.user_id, User.username))).all())
    return {
        "codes": [
            _invite_view(code, usernames).model_dump(mode="json", by_alias=True)
            for code in codes
        ]
    }


@router.post("/invite-codes")
async def create_invite_code(
    current_user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    invite = InviteCode(
        code=secrets.token_hex(8).upper(),
        is_used=False,
        created_by=current_user.user_id,
    )
    db.add(invite)
    await db.commit()
    await db.refresh(invite)

    logger.info(f"Admin {current_user.user_id} created invite code {invite.code}")
    view = _invite_view(invite, {current_user.user_id: current_user.username})
    return {"code": view.model_dump(mode="json", by_alias=True)}


@router.delete("/invite-codes/{invite_code_id}")
async def delete_invite_code(
    invite_code_id: uuid.UUID,
    current_user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete an unused invite code. Used codes are kept as an audit trail."""
    result = await db.execute(
        delete(InviteCode).where(
            InviteCode.invite_code_id == invite_code_id,
            InviteCode.is_used.is_(False),
        )
    )
    await db.commit()
    if result.rowcount == 0:
        raise NotFoundError(message="Invite code not found or already used")
    return {"success": True}


# ── role defaults ─────────────────────────────────────────────────────────


@router.get("/role-defaults")
async def list_role_defaults(
    current_user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = (
        (await db.execute(select(RoleDefault).order_by(RoleDefault.role)))
        .scalars()
        .all()
    )
    return {
        "roleDefaults": [
            RoleDefaultView.model_validate(row).model_dump(mode="json", by_alias=True)
            for row in rows
        ]
    }


@router.put("/role-defaults/{role}")
async def update_role_default(
    role: str,
    request: RoleDefaultUpdateRequest,
    current_user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")

    role_default = await db.get(RoleDefault, role)
    if role_default is None:
        raise NotFoundError("Role defaults")

    fields = _limit_fields(request)
    if not fields:
        raise ValidationError("No fields to update")

    for key, value in fields.items():
        setattr(role_default, key, value)
    await db.commit()
    await db.refresh(role_default)

    logger.info(f"Admin {current_user.user_id} updated defaults for role {role}")
    return {
        "roleDefault": RoleDefaultView.model_validate(role_default).model_dump(
            mode="json", by_alias=True
        )
    }
