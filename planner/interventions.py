"""
Intervention lifecycle.

    (trigger fires, no active intervention) -> pending
    pending -> acknowledged                     [user engages]
    pending|acknowledged -> in_progress         [escalate: level -> coach]
    pending|acknowledged|in_progress -> resolved | dismissed

Only one intervention is active at a time; terminal ones move to a bounded
history (newest first).
"""
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple
from uuid import uuid4

from planner.config_manager import config
from planner.triggers import InterventionTrigger, ResponseLevel, TriggerType


class InterventionStatus(str, Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


ACTIVE_STATUSES = frozenset({
    InterventionStatus.PENDING,
    InterventionStatus.ACKNOWLEDGED,
    InterventionStatus.IN_PROGRESS,
})


class ResolutionOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class Resolution:
    action: str
    outcome: ResolutionOutcome = ResolutionOutcome.SUCCESS
    user_feedback: Optional[str] = None


@dataclass(frozen=True)
class Intervention:
    id: str
    trigger_id: str
    trigger_type: TriggerType
    started_at: str
    status: InterventionStatus = InterventionStatus.PENDING
    current_level: ResponseLevel = ResponseLevel.FRIEND
    acknowledged_at: Optional[str] = None
    resolved_at: Optional[str] = None
    resolution: Optional[Resolution] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def acknowledge(self, now: datetime) -> "Intervention":
        if self.status != InterventionStatus.PENDING:
            return self
        return replace(self, status=InterventionStatus.ACKNOWLEDGED, acknowledged_at=now.isoformat())

    def escalate(self) -> "Intervention":
        """Move to coach; idempotent once the level is already coach."""
        if self.current_level == ResponseLevel.COACH or not self.is_active:
            return self
        return replace(self, status=InterventionStatus.IN_PROGRESS, current_level=ResponseLevel.COACH)

    def resolve(self, resolution: Optional[Resolution], now: datetime) -> "Intervention":
        return replace(
            self,
            status=InterventionStatus.RESOLVED,
            resolved_at=now.isoformat(),
            resolution=resolution,
        )

    def dismiss(self, now: datetime) -> "Intervention":
        return replace(self, status=InterventionStatus.DISMISSED, resolved_at=now.isoformat())


def new_intervention_id() -> str:
    return f"int_{uuid4().hex[:12]}"


def start_intervention(
    trigger: InterventionTrigger,
    trigger_type: Optional[TriggerType],
    now: datetime,
) -> Intervention:
    return Intervention(
        id=new_intervention_id(),
        trigger_id=trigger.id,
        trigger_type=TriggerType(trigger_type) if trigger_type else trigger.type,
        started_at=now.isoformat(),
        status=InterventionStatus.PENDING,
        current_level=trigger.response.level,
    )


def push_history(
    history: Tuple[Intervention, ...],
    intervention: Intervention,
    capacity: int = config.INTERVENTION_HISTORY_CAPACITY,
) -> Tuple[Intervention, ...]:
    return ((intervention,) + history)[:capacity]
