"""Notification target and status transition schemas."""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

NOTIFY_EVENTS = ("up", "down")


class NotificationTarget(BaseModel):
    """An operator-configured sink subscribed to status transitions."""
    name: str
    kind: Literal["chat", "webhook"]
    url: Optional[str] = None  # webhook endpoint
    token: Optional[str] = None  # chat bot token
    channel: Optional[str] = None  # chat channel id
    headers: Dict[str, str] = Field(default_factory=dict)
    events: List[str] = Field(default_factory=lambda: list(NOTIFY_EVENTS))

    def wants(self, status: str) -> bool:
        return status in self.events


class StatusTransition(BaseModel):
    """A change of reported status to up or down."""
    endpoint_id: int
    endpoint_name: str
    group_id: int
    group_name: Optional[str] = None
    monitor_type: str
    url: Optional[str] = None
    previous_status: str
    current_status: str
    response_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    checked_at: str
    error_message: Optional[str] = None
    matched_value: Optional[str] = None


def normalize_notification_target(raw) -> Optional[NotificationTarget]:
    """Normalize one entry of NOTIFICATION_TARGETS_JSON.

    Returns None when the entry is not an object or lacks the credentials its
    kind requires (token + channel for chat, url for webhooks).
    """
    if not isinstance(raw, dict):
        return None

    type_name = str(raw.get("type") or raw.get("kind") or "webhook").strip().lower()

    events = None
    if isinstance(raw.get("events"), list):
        events = [
            str(event).strip().lower()
            for event in raw["events"]
            if str(event).strip().lower() in NOTIFY_EVENTS
        ]
    if not events:
        events = list(NOTIFY_EVENTS)

    headers = raw.get("headers")
    if not isinstance(headers, dict):
        headers = {}

    if type_name in ("slack", "chat"):
        token = str(raw.get("token") or "").strip()
        channel = str(raw.get("channel") or "").strip()
        if not token or not channel:
            return None
        return NotificationTarget(
            name=str(raw.get("name") or "slack-target").strip(),
            kind="chat",
            token=token,
            channel=channel,
            events=events,
        )

    url = str(raw.get("url") or "").strip()
    if not url:
        return None
    return NotificationTarget(
        name=str(raw.get("name") or f"{type_name}-target").strip(),
        kind="webhook",
        url=url,
        headers={str(k): str(v) for k, v in headers.items()},
        events=events,
    )
