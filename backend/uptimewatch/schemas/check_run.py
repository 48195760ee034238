"""Check run schemas for API."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class CheckRunResponse(BaseModel):
    """Individual check run record."""
    id: int
    endpoint_id: int
    status: str  # pending, up, down
    response_code: Optional[int] = None
    matched_value: Optional[str] = None
    error_message: Optional[str] = None
    response_time_ms: Optional[int] = None
    checked_at: datetime

    class Config:
        from_attributes = True


class CheckRunList(BaseModel):
    """Check run history for one endpoint, newest first."""
    endpoint_id: int
    items: List[CheckRunResponse]


class DeletedCount(BaseModel):
    deleted: int


class PauseState(BaseModel):
    """Result of a pause/resume action."""
    endpoint_id: int
    action: str  # paused, resumed
