"""
Webhook Notifier for the Proactive Planner.

Sends notifications via HTTP webhooks (e.g., Slack, Discord, custom endpoints).
"""
from typing import Any, Dict, Optional

import httpx

from interface.notifiers.base import BaseNotifier, Notification
from planner.logger import get_logger

logger = get_logger("notifiers.webhook")


class WebhookNotifier(BaseNotifier):
    """Send notifications via HTTP webhooks."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(config)
        self.webhook_url = self.config.get("webhook_url", "")
        self.webhook_type = self.config.get("type", "generic")  # generic, slack, discord
        self.timeout = float(self.config.get("timeout", 10.0))
        self._transport = transport

    def send(self, notification: Notification) -> bool:
        if not self.is_available():
            return False

        payload = self._build_payload(notification)

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery to {self.webhook_url} failed: {e}")
            return False

        if response.status_code >= 400:
            logger.error(f"Webhook {self.webhook_url} answered {response.status_code}")
            return False
        return True

    def _build_payload(self, notification: Notification) -> Dict[str, Any]:
        """Build webhook payload based on type."""
        if self.webhook_type == "slack":
            return {"text": f"*{notification.title}*\n{notification.message}"}
        elif self.webhook_type == "discord":
            return {"content": f"**{notification.title}**\n{notification.message}"}
        else:
            return {
                "title": notification.title,
                "message": notification.message,
                "priority": notification.priority.value,
                "timestamp": notification.created_at,
                "intervention_id": notification.intervention_id,
                "trigger_type": notification.trigger_type,
            }

    def get_name(self) -> str:
        return "webhook"

    def is_available(self) -> bool:
        return bool(self.enabled and self.webhook_url)
