"""
Enumerations for the IAM system.
"""

from enum import Enum


class UserRole(str, Enum):
    """Enumeration of possible user roles"""

    ADMIN = "admin"
    USER = "user"


class PasswordFormat(str, Enum):
    """How a stored password value must be verified.

    LEGACY_PLAINTEXT rows come from pre-migration seed accounts and are
    re-hashed to BCRYPT on the first successful login.
    """

    BCRYPT = "bcrypt"
    LEGACY_PLAINTEXT = "legacy_plaintext"
