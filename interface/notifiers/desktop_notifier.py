"""
Desktop Notifier for the Proactive Planner.

Sends system notifications through plyer. Platforms without a plyer backend
degrade to a log line.
"""
from typing import Any, Dict, Optional

from plyer import notification as plyer_notify

from interface.notifiers.base import BaseNotifier, Notification
from planner.logger import get_logger

logger = get_logger("notifiers.desktop")

# 根据优先级设置显示时长 (秒)
_TIMEOUTS = {
    "low": 3,
    "normal": 5,
    "high": 8,
    "urgent": 10,
}


class DesktopNotifier(BaseNotifier):
    """Send notifications via system desktop notifications."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.app_name = self.config.get("app_name", "Proactive Planner")

    def send(self, notification: Notification) -> bool:
        if not self.enabled:
            return False

        try:
            plyer_notify.notify(
                title=notification.title,
                message=notification.message,
                app_name=self.app_name,
                timeout=_TIMEOUTS.get(notification.priority.value, 5),
            )
            return True
        except NotImplementedError:
            # 无桌面通知后端：降级为日志
            logger.warning(f"[Notification] {notification.title}: {notification.message}")
            return True
        except Exception as e:
            logger.error(f"Desktop notification failed: {e}")
            return False

    def get_name(self) -> str:
        return "desktop"
