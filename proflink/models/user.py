"""User model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from proflink.core.clock import utcnow
from proflink.core.ids import generate_user_id
from proflink.database import Base


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    uid = Column(String, primary_key=True, default=generate_user_id)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    role = Column(String, nullable=False)  # student/faculty
    code = Column(String, unique=True)
    profile_doc_id = Column(String, nullable=False)
    email_verified = Column(Boolean, nullable=False, default=False)
    profile_complete = Column(Boolean, nullable=False, default=False)
    session_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_login_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
