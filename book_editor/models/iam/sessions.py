"""
Refresh-token sessions.

Only the SHA-256 of the refresh token is stored; the raw token is handed to
the client once and is meaningful only through this table.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from book_editor.db.base import Base
import uuid


class Session(Base):
    __tablename__ = "sessions"

    session_id = Column(
        Uuid,
        primary_key=True,
        unique=True,
        index=True,
        nullable=False,
        default=uuid.uuid4,
    )
    user_id = Column(
        Uuid,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash = Column(String, nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="sessions")
