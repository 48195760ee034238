"""MonitorGroup model - named collections of endpoints."""
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class MonitorGroup(Base):
    """A group of monitored endpoints."""

    __tablename__ = "monitor_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationship
    endpoints = relationship("MonitorEndpoint", back_populates="group", cascade="all, delete-orphan")
