"""
Pydantic models returned across the API boundary.

``UserView`` is the sanitised user: the password hash and the account-guard
fields (failed attempts, lockout expiry) never leave the service.
Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
import uuid

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, populate_by_name=True, alias_generator=to_camel
    )


class UserView(CamelModel):
    id: uuid.UUID
    username: str
    email: str
    role: str
    is_active: bool
    daily_token_limit: int
    monthly_token_limit: int
    created_at: datetime | None = None
    last_login_at: datetime | None = None

    @classmethod
    def from_user(cls, user) -> "UserView":
        return cls(
            id=user.user_id,
            username=user.username,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            daily_token_limit=user.daily_token_limit,
            monthly_token_limit=user.monthly_token_limit,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


class AuthResult(CamelModel):
    user: UserView
    access_token: str
    refresh_token: str


class UsageTotals(BaseModel):
    input: int = 0
    output: int = 0
    total: int = 0


class UsageWindow(CamelModel):
    input: int | None = None
    output: int | None = None
    total: int
    limit: int
    percentage: int | None = None
    is_unlimited: bool
    is_restricted: bool


class UsageSummary(BaseModel):
    daily: UsageWindow
    monthly: UsageWindow


class UsageHistoryEntry(CamelModel):
    id: uuid.UUID
    endpoint: str
    tokens_input: int
    tokens_output: int
    tokens_total: int
    model: str | None = None
    project_id: str | None = None
    created_at: datetime


class SystemUsageStats(CamelModel):
    total_calls: int
    total_tokens: int
    unique_users: int


class InviteCodeView(CamelModel):
    id: uuid.UUID
    code: str
    is_used: bool
    created_by: str | None = None
    used_by: str | None = None
    created_at: datetime | None = None
    used_at: datetime | None = None


class RoleDefaultView(CamelModel):
    role: str
    daily_token_limit: int
    monthly_token_limit: int
    updated_at: datetime | None = None


class UserUsageView(UserView):
    daily: UsageWindow
    monthly: UsageWindow
