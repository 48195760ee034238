"""Notifier service - delivers status transitions to chat and webhook targets."""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional

import httpx

from ..config import settings, resolve_notification_targets
from ..schemas.notification import NOTIFY_EVENTS, NotificationTarget, StatusTransition

logger = logging.getLogger(__name__)

CHAT_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"

STATUS_COLORS = {
    "up": "#16a34a",
    "down": "#dc2626",
}


class NotificationDeliveryError(RuntimeError):
    """A target rejected or failed a notification."""


def _format_checked_at(value: str) -> str:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).isoformat()
    except ValueError:
        return value


def build_chat_payload(event: StatusTransition, environment: str) -> dict:
    """Build a rich chat message with one labeled field per check fact."""
    is_up = event.current_status == "up"
    title = f"[{environment}] {'Monitor UP' if is_up else 'Monitor DOWN'}: {event.endpoint_name}"

    fields = [
        {"title": "Status", "value": (event.current_status or "n/a").upper(), "short": True},
        {"title": "Previous", "value": (event.previous_status or "n/a").upper(), "short": True},
        {"title": "Group", "value": event.group_name or f"#{event.group_id}", "short": True},
        {"title": "Type", "value": (event.monitor_type or "http").upper(), "short": True},
        {
            "title": "Response Code",
            "value": str(event.response_code) if event.response_code is not None else "n/a",
            "short": True,
        },
        {
            "title": "Latency",
            "value": f"{event.response_time_ms if event.response_time_ms is not None else 'n/a'} ms",
            "short": True,
        },
        {"title": "Checked At", "value": _format_checked_at(event.checked_at), "short": False},
        {"title": "URL", "value": event.url or "n/a", "short": False},
    ]
    if event.error_message:
        fields.append({"title": "Error", "value": event.error_message, "short": False})
    if event.matched_value is not None:
        fields.append({"title": "Matched Value", "value": event.matched_value, "short": False})

    return {
        "text": title,
        "attachments": [
            {
                "color": STATUS_COLORS.get(event.current_status, "#6b7280"),
                "title": title,
                "fields": fields,
            }
        ],
    }


def build_webhook_payload(event: StatusTransition) -> dict:
    """Build the flat JSON envelope posted to generic webhooks."""
    return {
        "source": "uptimewatch",
        "eventType": "monitor.status_changed",
        "currentStatus": event.current_status,
        "previousStatus": event.previous_status,
        "endpoint": {
            "id": event.endpoint_id,
            "name": event.endpoint_name,
            "groupId": event.group_id,
            "groupName": event.group_name,
            "monitorType": event.monitor_type,
            "url": event.url,
        },
        "check": {
            "responseCode": event.response_code,
            "responseTimeMs": event.response_time_ms,
            "checkedAt": event.checked_at,
            "errorMessage": event.error_message,
            "matchedValue": event.matched_value,
        },
    }


class NotifierService:
    """Service for fanning status transitions out to notification targets."""

    def __init__(
        self,
        targets: Optional[List[NotificationTarget]] = None,
        enabled: Optional[bool] = None,
        environment: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.targets = list(targets) if targets is not None else resolve_notification_targets()
        self.enabled = settings.notifications_enabled if enabled is None else enabled
        self.environment = environment or settings.app_env
        self.timeout = timeout if timeout is not None else settings.notification_timeout_seconds
        self._transport = transport

    async def notify(self, event: StatusTransition):
        """Deliver a status transition to every subscribed target.

        Deliveries run concurrently; a failing target is logged and never
        affects the others or the caller.
        """
        logger.info(
            f"Status change for endpoint {event.endpoint_id}: "
            f"{event.previous_status} -> {event.current_status}"
        )
        if not self.enabled:
            return
        if event.current_status not in NOTIFY_EVENTS:
            return
        if not self.targets:
            return

        subscribed = [t for t in self.targets if t.wants(event.current_status)]
        if not subscribed:
            return

        await asyncio.gather(*[self._notify_target(t, event) for t in subscribed])

    async def _notify_target(self, target: NotificationTarget, event: StatusTransition) -> bool:
        """Deliver to one target, isolating its failure."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                if target.kind == "chat":
                    await self._send_chat(client, target, event)
                else:
                    await self._send_webhook(client, target, event)
            logger.info(f"Notification sent: target={target.name} event={event.current_status}")
            return True
        except Exception as e:
            logger.error(
                f"Notification failed: target={target.name} event={event.current_status}: {e}"
            )
            return False

    async def _send_chat(self, client: httpx.AsyncClient, target: NotificationTarget, event: StatusTransition):
        payload = {"channel": target.channel, **build_chat_payload(event, self.environment)}
        response = await client.post(
            CHAT_POST_MESSAGE_URL,
            json=payload,
            headers={"Authorization": f"Bearer {target.token}"},
        )
        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success or not isinstance(body, dict) or not body.get("ok"):
            reason = body.get("error") if isinstance(body, dict) else None
            raise NotificationDeliveryError(
                f"chat.postMessage failed ({response.status_code}): {reason or 'unknown_error'}"
            )

    async def _send_webhook(self, client: httpx.AsyncClient, target: NotificationTarget, event: StatusTransition):
        response = await client.post(
            target.url,
            json=build_webhook_payload(event),
            headers=target.headers,
        )
        if not response.is_success:
            raise NotificationDeliveryError(
                f"Webhook returned {response.status_code}: {response.text or 'no response body'}"
            )


# Global instance
notifier_service = NotifierService()
