"""Failure log for best-effort side effects."""

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from proflink.database import Base
from proflink.core.clock import utcnow


class SideEffectFailure(Base):
    __tablename__ = "side_effect_failures"

    id = Column(Integer, primary_key=True)
    task_name = Column(String, nullable=False, index=True)
    error = Column(Text, nullable=False)
    payload = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow)
