"""
User model.

Holds identity, role, token limits and the account-guard state (failed
login counter + lockout expiry). Rows are never deleted by the gate.
"""

from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Integer,
    CheckConstraint,
    Index,
    Uuid,
    func,
)
from sqlalchemy.orm import relationship
from book_editor.db.base import Base
from .enums import PasswordFormat, UserRole
import uuid


class User(Base):
    __tablename__ = "users"

    user_id = Column(
        Uuid,
        primary_key=True,
        unique=True,
        index=True,
        nullable=False,
        default=uuid.uuid4,
    )
    username = Column(String(30), nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    password_format = Column(
        String, nullable=False, default=PasswordFormat.BCRYPT.value
    )
    role = Column(String, nullable=False, default=UserRole.USER.value)
    is_active = Column(Boolean, default=True, nullable=False)

    daily_token_limit = Column(Integer, nullable=False, default=-1)
    monthly_token_limit = Column(Integer, nullable=False, default=-1)

    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    sessions = relationship(
        "Session", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("uq_users_username_lower", func.lower(username), unique=True),
        CheckConstraint(
            role.in_([e.value for e in UserRole]),
            name="ck_user_role",
        ),
        CheckConstraint(
            password_format.in_([e.value for e in PasswordFormat]),
            name="ck_user_password_format",
        ),
        CheckConstraint("daily_token_limit >= -1", name="ck_user_daily_limit"),
        CheckConstraint("monthly_token_limit >= -1", name="ck_user_monthly_limit"),
    )
