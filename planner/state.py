"""
PlannerState: the single immutable record every reader sees.

Reducers never patch a field in place; each action produces a new state.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

from planner.conversation import ConversationSession
from planner.event_log import EventLog
from planner.health import HealthSnapshot
from planner.interventions import Intervention
from planner.reflections import PeriodSummary, TaskReflection
from planner.trackers import MoSCoWSuggestion
from planner.triggers import InterventionTrigger, load_default_triggers


class MonitoringMode(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"
    ALERT = "alert"
    INTERVENTION = "intervention"


@dataclass(frozen=True)
class MonitoringState:
    is_active: bool = False
    last_check_time: Optional[str] = None
    status: MonitoringMode = MonitoringMode.IDLE


@dataclass(frozen=True)
class PlannerState:
    monitoring: MonitoringState = field(default_factory=MonitoringState)
    health: HealthSnapshot = field(default_factory=HealthSnapshot)
    events: EventLog = field(default_factory=EventLog)
    triggers: Tuple[InterventionTrigger, ...] = ()
    current_intervention: Optional[Intervention] = None
    intervention_history: Tuple[Intervention, ...] = ()
    conversation: ConversationSession = field(default_factory=ConversationSession)
    moscow_suggestions: Dict[str, MoSCoWSuggestion] = field(default_factory=dict)
    reflections: Tuple[TaskReflection, ...] = ()
    summaries: Tuple[PeriodSummary, ...] = ()
    deadline_postpone_map: Dict[str, int] = field(default_factory=dict)


def initial_state(triggers: Optional[Sequence[InterventionTrigger]] = None) -> PlannerState:
    """Fresh state; triggers default to the shipped configuration."""
    if triggers is None:
        triggers = load_default_triggers()
    return PlannerState(triggers=tuple(triggers))
