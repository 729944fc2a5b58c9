"""
Popup-level intervention alerts.

Friend/coach interventions open a conversation; popup ones do not, so the
user would never see them. `InterventionAlerts` is a store listener that
sends each newly fired popup intervention through the configured notifiers.

    alerts = InterventionAlerts.from_config()
    store.subscribe(alerts)
"""
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from interface.notifiers.base import BaseNotifier, Notification, NotificationPriority
from interface.notifiers.desktop_notifier import DesktopNotifier
from interface.notifiers.webhook_notifier import WebhookNotifier
from planner.health import OverallStatus
from planner.logger import get_logger
from planner.paths import CONFIG_DIR
from planner.state import PlannerState
from planner.triggers import ResponseLevel, find_trigger

logger = get_logger("alerts")

NOTIFICATIONS_CONFIG_PATH = CONFIG_DIR / "notifications.yaml"

# 触发类型 -> 通知标题
_TITLES = {
    "idle_too_long": "Still there?",
    "deadline_postponed_twice": "Deadline slipping",
    "progress_severely_behind": "Falling behind",
    "low_daily_completion": "Today's progress",
    "quest_at_risk": "Quest at risk",
    "quest_overdue": "Quest overdue",
    "chapter_overdue": "Chapter overdue",
    "deadline_inconsistency": "Deadline check",
    "energy_depleted": "Low energy",
    "focus_lost": "Focus",
}


def load_notification_settings(path: Path = NOTIFICATIONS_CONFIG_PATH) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        logger.warning(f"Could not read {path}: {e}; using desktop notifications only")
        return {}


def build_notifiers(settings: Dict[str, Any]) -> List[BaseNotifier]:
    """Desktop is on unless disabled; webhook only when a URL is configured."""
    notifiers: List[BaseNotifier] = [DesktopNotifier(settings.get("desktop") or {})]
    webhook = settings.get("webhook") or {}
    if webhook.get("webhook_url"):
        notifiers.append(WebhookNotifier(webhook))
    return notifiers


class InterventionAlerts:
    """Store listener: (previous, current, action) -> notifications."""

    def __init__(self, notifiers: Sequence[BaseNotifier]):
        self.notifiers = list(notifiers)

    @classmethod
    def from_config(cls, path: Path = NOTIFICATIONS_CONFIG_PATH) -> "InterventionAlerts":
        return cls(build_notifiers(load_notification_settings(path)))

    def __call__(self, previous: PlannerState, current: PlannerState, action) -> None:
        notification = self.build_notification(previous, current)
        if notification is not None:
            self.send(notification)

    def build_notification(
        self, previous: PlannerState, current: PlannerState
    ) -> Optional[Notification]:
        intervention = current.current_intervention
        if intervention is None or intervention.current_level != ResponseLevel.POPUP:
            return None
        before = previous.current_intervention
        if before is not None and before.id == intervention.id:
            return None

        trigger = find_trigger(current.triggers, intervention.trigger_id)
        if trigger is None:
            return None

        priority = (
            NotificationPriority.HIGH
            if current.health.overall_status == OverallStatus.RED
            else NotificationPriority.NORMAL
        )
        return Notification(
            title=_TITLES.get(intervention.trigger_type.value, "Planner"),
            message=trigger.response.message,
            priority=priority,
            created_at=intervention.started_at,
            intervention_id=intervention.id,
            trigger_type=intervention.trigger_type.value,
        )

    def send(self, notification: Notification) -> int:
        """Send through every available notifier; returns how many succeeded."""
        delivered = 0
        for notifier in self.notifiers:
            if not notifier.is_available():
                continue
            if notifier.send(notification):
                delivered += 1
            else:
                logger.warning(f"{notifier.get_name()} could not deliver {notification.intervention_id}")
        logger.info(
            f"Popup alert {notification.trigger_type} delivered via {delivered} notifier(s)"
        )
        return delivered
