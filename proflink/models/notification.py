"""Notification model definitions."""

from sqlalchemy import BigInteger, Boolean, Column, String, Text

from proflink.database import Base


class Notification(Base):
    """notifications/{recipient_uid}/{id}"""
    __tablename__ = "notifications"

    id = Column(String, primary_key=True)
    recipient_uid = Column(String, nullable=False, index=True)
    sender_uid = Column(String)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    appointment_id = Column(String)
    created_at = Column(BigInteger, nullable=False)  # epoch milliseconds
    read = Column(Boolean, nullable=False, default=False)
