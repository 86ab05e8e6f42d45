"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from proflink.database import Base
from proflink.core.clock import utcnow


class Appointment(Base):
    """Represents a booking request between one student and one faculty member."""
    __tablename__ = "appointments"

    id = Column(String, primary_key=True)
    student_uid = Column(String, ForeignKey("users.uid"), nullable=False, index=True)
    student_name = Column(String, nullable=False, default="")
    student_email = Column(String, nullable=False, default="")
    faculty_uid = Column(String, ForeignKey("users.uid"), nullable=False, index=True)
    faculty_name = Column(String, nullable=False, default="")
    faculty_email = Column(String, nullable=False, default="")
    requested_time = Column(DateTime(timezone=True), nullable=False)
    reschedule_time = Column(DateTime(timezone=True))
    reason = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default="pending")
    room_suffix = Column(String(8), unique=True, index=True)  # last 8 chars of id, names the meeting room
    meeting_link = Column(String)
    faculty_notes = Column(Text)
    notes_updated_at = Column(DateTime(timezone=True))
    student_feedback = Column(Text)
    student_rating = Column(Integer)
    feedback_submitted_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
