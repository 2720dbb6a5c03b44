"""
IAM models: users, invite codes, refresh-token sessions and role defaults.
"""

from .enums import PasswordFormat, UserRole
from .users import User
from .invite_codes import InviteCode
from .sessions import Session
from .role_defaults import RoleDefault

__all__ = [
    "PasswordFormat",
    "UserRole",
    "User",
    "InviteCode",
    "Session",
    "RoleDefault",
]
