"""Role profile documents stored under a user."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String

from proflink.database import Base
from proflink.core.clock import utcnow


class StudentProfile(Base):
    """users/{uid}/studentProfile/{profile_id}"""
    __tablename__ = "student_profiles"

    user_uid = Column(String, ForeignKey("users.uid"), primary_key=True)
    profile_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class FacultyProfile(Base):
    """users/{uid}/facultyProfile/{profile_id}"""
    __tablename__ = "faculty_profiles"

    user_uid = Column(String, ForeignKey("users.uid"), primary_key=True)
    profile_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
