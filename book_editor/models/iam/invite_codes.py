"""
Single-use registration invite codes.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Uuid, func
from book_editor.db.base import Base
import uuid


class InviteCode(Base):
    __tablename__ = "invite_codes"

    invite_code_id = Column(
        Uuid,
        primary_key=True,
        unique=True,
        index=True,
        nullable=False,
        default=uuid.uuid4,
    )
    code = Column(String, nullable=False, unique=True, index=True)
    is_used = Column(Boolean, nullable=False, default=False)

    created_by = Column(
        Uuid, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    used_by = Column(
        Uuid, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    used_at = Column(DateTime(timezone=True), nullable=True)
