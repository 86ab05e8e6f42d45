"""Directory model definitions."""

from sqlalchemy import Column, DateTime, String

from proflink.database import Base


class DirectoryEntry(Base):
    """Student-readable projection of a faculty profile."""
    __tablename__ = "directory"

    uid = Column(String, primary_key=True)
    name = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False, default="")
    department = Column(String, nullable=False, default="")
    updated_at = Column(DateTime(timezone=True))
