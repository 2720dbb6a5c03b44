"""
Usage log model - one immutable row per billed AI call.
"""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Index, Uuid
from book_editor.db.base import Base
from book_editor.utils import utcnow
import uuid


class UsageLog(Base):
    __tablename__ = "usage_logs"

    usage_log_id = Column(
        Uuid,
        primary_key=True,
        unique=True,
        nullable=False,
        default=uuid.uuid4,
    )
    user_id = Column(
        Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    endpoint = Column(String, nullable=False)
    tokens_input = Column(Integer, nullable=False, default=0)
    tokens_output = Column(Integer, nullable=False, default=0)
    model = Column(String, nullable=True)
    project_id = Column(String, nullable=True)

    # Set in Python so window comparisons are always made in UTC.
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_usage_logs_user_created", "user_id", "created_at"),
    )
