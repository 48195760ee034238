"""Per-check event published after every executed check."""
from typing import Optional

from pydantic import BaseModel


class CheckEvent(BaseModel):
    """Outcome of one executed check, for realtime observers."""
    endpoint_id: int
    group_id: int
    monitor_type: str
    status: str  # pending, up, down
    previous_status: str
    response_code: Optional[int] = None
    last_checked_at: str
    last_error: Optional[str] = None
    last_match_value: Optional[str] = None
    consecutive_failures: int
    consecutive_successes: int
    response_time_ms: int
