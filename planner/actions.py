"""
Planner actions.

Every mutation of PlannerState is one of these records, handled by a reducer in
planner.reducers. Actions carry intent only; timestamps come from the store's
clock at dispatch time.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from planner.conversation import ConversationContext, ConversationMode, SuggestedAction
from planner.event_log import EventEntity, EventType
from planner.health import HealthSnapshot
from planner.interventions import Resolution
from planner.reflections import PeriodSummary, TaskReflection
from planner.state import MonitoringMode
from planner.trackers import MoSCoWSuggestion
from planner.triggers import InterventionTrigger, TriggerType


class Action:
    """Marker base class for dispatchable actions."""


# --- Monitoring ---

@dataclass(frozen=True)
class StartMonitoring(Action):
    pass


@dataclass(frozen=True)
class StopMonitoring(Action):
    pass


@dataclass(frozen=True)
class UpdateMonitoringStatus(Action):
    status: MonitoringMode


@dataclass(frozen=True)
class ReplaceHealthSnapshot(Action):
    """Replace the whole snapshot; status/reasons travel inside it."""
    snapshot: HealthSnapshot


# --- Events ---

@dataclass(frozen=True)
class AddEvent(Action):
    type: EventType
    entity: EventEntity
    payload: Mapping[str, Any] = field(default_factory=dict)
    metadata: Optional[Mapping[str, Any]] = None


# --- Interventions ---

@dataclass(frozen=True)
class TriggerIntervention(Action):
    trigger_id: str
    trigger_type: Optional[TriggerType] = None


@dataclass(frozen=True)
class AcknowledgeIntervention(Action):
    pass


@dataclass(frozen=True)
class EscalateIntervention(Action):
    pass


@dataclass(frozen=True)
class ResolveIntervention(Action):
    resolution: Optional[Resolution] = None


@dataclass(frozen=True)
class DismissIntervention(Action):
    pass


@dataclass(frozen=True)
class UpdateTriggerCooldown(Action):
    trigger_id: str


@dataclass(frozen=True)
class SetTriggerEnabled(Action):
    trigger_id: str
    enabled: bool


# --- Conversation ---

@dataclass(frozen=True)
class OpenConversation(Action):
    mode: ConversationMode
    context: Optional[ConversationContext] = None


@dataclass(frozen=True)
class CloseConversation(Action):
    pass


@dataclass(frozen=True)
class AddMessage(Action):
    role: str
    content: str
    suggested_actions: Tuple[SuggestedAction, ...] = ()


@dataclass(frozen=True)
class DeliverReply(Action):
    """An AI reply requested for `session_id`; dropped if that session is gone."""
    session_id: str
    role: str
    content: str
    suggested_actions: Tuple[SuggestedAction, ...] = ()


@dataclass(frozen=True)
class ConfirmAction(Action):
    message_id: str
    action_id: str
    params: Mapping[str, Any] = field(default_factory=dict)


# --- Trackers ---

@dataclass(frozen=True)
class AddMoSCoWSuggestion(Action):
    suggestion: MoSCoWSuggestion


@dataclass(frozen=True)
class ConfirmMoSCoWSuggestion(Action):
    task_id: str


@dataclass(frozen=True)
class DismissMoSCoWSuggestion(Action):
    task_id: str


@dataclass(frozen=True)
class RecordDeadlinePostpone(Action):
    task_id: str


@dataclass(frozen=True)
class ClearDeadlinePostpone(Action):
    task_id: str


# --- Reflections ---

@dataclass(frozen=True)
class AddReflection(Action):
    reflection: TaskReflection


@dataclass(frozen=True)
class AddSummary(Action):
    summary: PeriodSummary


@dataclass(frozen=True)
class UpdateSummary(Action):
    summary_id: str
    updates: Dict[str, Any] = field(default_factory=dict)


# --- Data management ---

@dataclass(frozen=True)
class ResetPlanner(Action):
    triggers: Optional[Sequence[InterventionTrigger]] = None
