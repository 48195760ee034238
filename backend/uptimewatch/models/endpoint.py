"""MonitorEndpoint model - configured health checks."""
from sqlalchemy import Boolean, Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class MonitorEndpoint(Base):
    """A monitored target - HTTP, SQL, key-value, messaging or TCP check."""

    __tablename__ = "monitor_endpoints"
    __table_args__ = (
        Index("ix_monitor_endpoints_due", "is_paused", "next_check_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("monitor_groups.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(120), nullable=False)
    monitor_type = Column(String(16), nullable=False, default="http")  # http, sql, kv, messaging, tcp

    # HTTP check
    url = Column(Text, nullable=False, default="")
    method = Column(String(10), nullable=False, default="GET")
    headers_json = Column(Text, nullable=True)  # JSON object
    body_text = Column(Text, nullable=True)
    expected_status = Column(Integer, nullable=False, default=200)
    expected_json_path = Column(String(255), nullable=True)  # e.g. data.items[0].status
    expected_json_value = Column(Text, nullable=True)  # JSON literal or plain string

    # Other protocols
    connection_json = Column(Text, nullable=True)  # JSON object, shape depends on monitor_type
    probe_command = Column(Text, nullable=True)
    expected_probe_value = Column(Text, nullable=True)  # NULL = protocol default

    # Scheduling and hysteresis
    interval_seconds = Column(Integer, nullable=False, default=60)
    down_retries = Column(Integer, nullable=False, default=3)
    up_retries = Column(Integer, nullable=False, default=1)
    status = Column(String(16), nullable=False, default="pending")  # pending, up, down
    consecutive_failures = Column(Integer, nullable=False, default=0)
    consecutive_successes = Column(Integer, nullable=False, default=0)
    is_paused = Column(Boolean, nullable=False, default=False)
    next_check_at = Column(DateTime, nullable=False, default=utcnow)

    # Last check
    last_checked_at = Column(DateTime, nullable=True)
    last_response_code = Column(Integer, nullable=True)
    last_error = Column(Text, nullable=True)
    last_match_value = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    group = relationship("MonitorGroup", back_populates="endpoints")
    check_runs = relationship("CheckRun", back_populates="endpoint", cascade="all, delete-orphan")
