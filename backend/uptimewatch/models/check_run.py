"""CheckRun model - immutable history of executed checks."""
from sqlalchemy import BigInteger, Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class CheckRun(Base):
    """Result of one executed check."""

    __tablename__ = "monitor_check_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    endpoint_id = Column(Integer, ForeignKey("monitor_endpoints.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(16), nullable=False)  # pending, up, down
    response_code = Column(Integer, nullable=True)
    matched_value = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    checked_at = Column(DateTime, default=utcnow)

    # Relationship
    endpoint = relationship("MonitorEndpoint", back_populates="check_runs")
