"""
Default token limits applied to newly registered users of a role.
"""

from sqlalchemy import Column, String, DateTime, Integer, func
from book_editor.db.base import Base


class RoleDefault(Base):
    __tablename__ = "role_defaults"

    role = Column(String, primary_key=True)
    daily_token_limit = Column(Integer, nullable=False)
    monthly_token_limit = Column(Integer, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
