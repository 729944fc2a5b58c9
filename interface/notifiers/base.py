"""
Base Notifier for the Proactive Planner.

Popup-level interventions open no conversation; they reach the user as a
notification through one of these notifiers.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class NotificationPriority(Enum):
    """Notification priority levels."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass
class Notification:
    """A notification to be sent."""
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    created_at: Optional[str] = None
    intervention_id: Optional[str] = None
    trigger_type: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now().isoformat()


class BaseNotifier(ABC):
    """Base class for all notifiers."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.enabled = self.config.get("enabled", True)

    @abstractmethod
    def send(self, notification: Notification) -> bool:
        """
        Send a notification.

        Returns:
            True if sent successfully, False otherwise.
        """

    @abstractmethod
    def get_name(self) -> str:
        """Return the notifier name."""

    def is_available(self) -> bool:
        return self.enabled
