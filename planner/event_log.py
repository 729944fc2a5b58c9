"""
Event Log for the Proactive Planner.

Append-only, size-bounded record of everything the monitoring engine observes
or decides. Newest first; once the capacity is exceeded the oldest entries are
dropped silently.

- create_event: build a normalized event (metadata defaults filled in)
- EventLog.append: return a new log with the event prepended and truncated
- recent / by_type / by_entity: pure reads
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from planner.config_manager import config


class EventType(str, Enum):
    # 任务生命周期
    TASK_CREATED = "task.created"
    TASK_STARTED = "task.started"
    TASK_PAUSED = "task.paused"
    TASK_RESUMED = "task.resumed"
    TASK_COMPLETED = "task.completed"
    TASK_CHECKLIST_TICK = "task.checklist_tick"
    TASK_DELETED = "task.deleted"
    TASK_DEADLINE_CHANGED = "task.deadline_changed"
    TASK_PRIORITY_CHANGED = "task.priority_changed"
    TASK_MOSCOW_CHANGED = "task.moscow_changed"

    # 副本生命周期
    QUEST_CREATED = "quest.created"
    QUEST_STARTED = "quest.started"
    QUEST_PROGRESS_UPDATED = "quest.progress_updated"
    QUEST_COMPLETED = "quest.completed"
    QUEST_PRUNED = "quest.pruned"
    QUEST_DEADLINE_EXTENDED = "quest.deadline_extended"

    # 干预
    INTERVENTION_TRIGGERED = "intervention.triggered"
    INTERVENTION_ACKNOWLEDGED = "intervention.acknowledged"
    INTERVENTION_ESCALATED = "intervention.escalated"
    INTERVENTION_RESOLVED = "intervention.resolved"
    INTERVENTION_DISMISSED = "intervention.dismissed"

    # 对话
    CONVERSATION_STARTED = "conversation.started"
    CONVERSATION_USER_MESSAGE = "conversation.user_message"
    CONVERSATION_AI_RESPONSE = "conversation.ai_response"
    CONVERSATION_ACTION_TAKEN = "conversation.action_taken"
    CONVERSATION_ENDED = "conversation.ended"

    # 复盘
    REFLECTION_TASK_COMPLETED = "reflection.task_completed"
    REFLECTION_QUEST_COMPLETED = "reflection.quest_completed"
    SUMMARY_GENERATED = "summary.generated"

    # 系统
    SYSTEM_MONITOR_TICK = "system.monitor_tick"
    SYSTEM_STATUS_CHANGED = "system.status_changed"
    SYSTEM_DAILY_RESET = "system.daily_reset"


class EntityType(str, Enum):
    TASK = "task"
    QUEST = "quest"
    CHAPTER = "chapter"
    SEASON = "season"
    SYSTEM = "system"
    USER = "user"


class EventSource(str, Enum):
    USER = "user"
    SYSTEM = "system"
    AI_FRIEND = "ai_friend"
    AI_COACH = "ai_coach"


class Importance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class EventEntity:
    type: EntityType
    id: str
    name: Optional[str] = None


@dataclass(frozen=True)
class EventMetadata:
    source: EventSource = EventSource.SYSTEM
    importance: Importance = Importance.LOW
    caused_by: Optional[str] = None
    related_events: Optional[List[str]] = None


@dataclass(frozen=True)
class PlannerEvent:
    id: str
    type: EventType
    timestamp: str
    entity: EventEntity
    payload: Dict[str, Any] = field(default_factory=dict)
    metadata: EventMetadata = field(default_factory=EventMetadata)


def new_event_id() -> str:
    return f"evt_{uuid4().hex[:12]}"


def create_event(
    event_type: EventType,
    entity: EventEntity,
    payload: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> PlannerEvent:
    """
    Build a normalized event.

    Args:
        metadata: partial metadata; missing `source` / `importance` default to
            system / low.
    """
    meta = metadata or {}
    return PlannerEvent(
        id=new_event_id(),
        type=EventType(event_type),
        timestamp=(now or datetime.now()).isoformat(),
        entity=entity,
        payload=dict(payload or {}),
        metadata=EventMetadata(
            source=EventSource(meta.get("source") or EventSource.SYSTEM),
            importance=Importance(meta.get("importance") or Importance.LOW),
            caused_by=meta.get("caused_by"),
            related_events=meta.get("related_events"),
        ),
    )


@dataclass(frozen=True)
class EventLog:
    """Immutable event stream, newest first."""
    events: Tuple[PlannerEvent, ...] = ()
    capacity: int = config.EVENT_LOG_CAPACITY

    def append(self, event: PlannerEvent) -> "EventLog":
        events = (event,) + self.events
        return EventLog(events=events[: self.capacity], capacity=self.capacity)

    def __len__(self) -> int:
        return len(self.events)

    @property
    def latest(self) -> Optional[PlannerEvent]:
        return self.events[0] if self.events else None

    def recent(self, count: int = config.RECENT_EVENTS_DEFAULT) -> List[PlannerEvent]:
        return list(self.events[:count])

    def by_type(self, event_type: EventType) -> List[PlannerEvent]:
        return [e for e in self.events if e.type == event_type]

    def by_entity(self, entity_type: str, entity_id: str) -> List[PlannerEvent]:
        return [
            e for e in self.events
            if e.entity.type == entity_type and e.entity.id == entity_id
        ]
