from .iam import (
    PasswordFormat as PasswordFormat,
    UserRole as UserRole,
    User as User,
    InviteCode as InviteCode,
    Session as Session,
    RoleDefault as RoleDefault,
)

from .usage import UsageLog as UsageLog
