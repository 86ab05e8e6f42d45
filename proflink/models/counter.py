"""Sequential counters backing human-readable codes."""

from sqlalchemy import Column, Integer, String

from proflink.database import Base


class Counter(Base):
    """One named counter under meta/counters."""
    __tablename__ = "counters"

    name = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)
