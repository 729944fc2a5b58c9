"""
PlannerStore: the injected service that owns the planner state.

- dispatch(action): run the reducer with the store's clock, swap in the new
  state, then notify listeners (previous, current, action)
- method wrappers for every action, returning what callers usually need
  (event id, new count, session id, ...)
- read-only queries over the current state

Persistence and notifications are listeners, not part of the store.
"""
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from planner import actions as a
from planner.conversation import ConversationContext, ConversationMode, SuggestedAction
from planner.event_log import EventEntity, EventType, PlannerEvent
from planner.health import HealthSnapshot
from planner.interventions import Intervention, Resolution
from planner.logger import get_logger
from planner.reducers import reduce
from planner.reflections import PeriodSummary, SummaryType, TaskReflection, summaries_by_type, summary_by_id
from planner.state import MonitoringMode, PlannerState, initial_state
from planner.trackers import MoSCoWSuggestion
from planner.triggers import InterventionTrigger, TriggerType, find_trigger, load_default_triggers

logger = get_logger("store")

Listener = Callable[[PlannerState, PlannerState, a.Action], None]
Clock = Callable[[], datetime]


class PlannerStore:
    """
    Single writer for PlannerState.

    Args:
        state: starting state (e.g. restored from disk); defaults to a fresh
            state built from `default_triggers`
        clock: source of "now" for every action
        default_triggers: trigger set used for the initial state and `reset`
    """

    def __init__(
        self,
        state: Optional[PlannerState] = None,
        clock: Clock = datetime.now,
        default_triggers: Optional[Sequence[InterventionTrigger]] = None,
    ):
        self._clock = clock
        if default_triggers is None:
            default_triggers = load_default_triggers()
        self._default_triggers = tuple(default_triggers)
        self._state = state if state is not None else initial_state(self._default_triggers)
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    # ========== 核心 ==========

    @property
    def state(self) -> PlannerState:
        return self._state

    @property
    def default_triggers(self):
        return self._default_triggers

    def now(self) -> datetime:
        return self._clock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: a.Action) -> PlannerState:
        with self._lock:
            previous = self._state
            current = reduce(previous, action, self._clock())
            self._state = current

        if current is not previous:
            self._notify(previous, current, action)
        return current

    def _notify(self, previous: PlannerState, current: PlannerState, action: a.Action) -> None:
        for listener in list(self._listeners):
            try:
                listener(previous, current, action)
            except Exception as e:
                logger.error(
                    f"Listener {getattr(listener, '__name__', listener)!r} failed on "
                    f"{type(action).__name__}: {e}",
                    exc_info=True,
                )

    # ========== 监测控制 ==========

    def start_monitoring(self) -> None:
        self.dispatch(a.StartMonitoring())

    def stop_monitoring(self) -> None:
        self.dispatch(a.StopMonitoring())

    def update_monitoring_status(self, status: MonitoringMode) -> None:
        self.dispatch(a.UpdateMonitoringStatus(status=MonitoringMode(status)))

    def replace_health_snapshot(self, snapshot: HealthSnapshot) -> HealthSnapshot:
        return self.dispatch(a.ReplaceHealthSnapshot(snapshot=snapshot)).health

    # ========== 事件 ==========

    def add_event(
        self,
        event_type: EventType,
        entity: EventEntity,
        payload: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Append an event; returns its id."""
        state = self.dispatch(a.AddEvent(
            type=EventType(event_type),
            entity=entity,
            payload=dict(payload or {}),
            metadata=metadata,
        ))
        return state.events.latest.id

    def recent_events(self, count: Optional[int] = None) -> List[PlannerEvent]:
        if count is None:
            return self._state.events.recent()
        return self._state.events.recent(count)

    def events_by_type(self, event_type: EventType) -> List[PlannerEvent]:
        return self._state.events.by_type(EventType(event_type))

    def events_by_entity(self, entity_type: str, entity_id: str) -> List[PlannerEvent]:
        return self._state.events.by_entity(entity_type, entity_id)

    # ========== 干预 ==========

    def trigger_intervention(
        self, trigger_id: str, trigger_type: Optional[TriggerType] = None
    ) -> Optional[Intervention]:
        """
        Fire a trigger.

        Returns the new intervention, or None when the trigger id is unknown
        or another intervention is still active (the new trigger is dropped).
        """
        before = self._state.current_intervention
        state = self.dispatch(a.TriggerIntervention(trigger_id=trigger_id, trigger_type=trigger_type))
        after = state.current_intervention
        if after is None or after is before:
            return None
        return after

    def acknowledge_intervention(self) -> None:
        self.dispatch(a.AcknowledgeIntervention())

    def escalate_intervention(self) -> None:
        self.dispatch(a.EscalateIntervention())

    def resolve_intervention(self, resolution: Optional[Resolution] = None) -> None:
        self.dispatch(a.ResolveIntervention(resolution=resolution))

    def dismiss_intervention(self) -> None:
        self.dispatch(a.DismissIntervention())

    def update_trigger_cooldown(self, trigger_id: str) -> None:
        self.dispatch(a.UpdateTriggerCooldown(trigger_id=trigger_id))

    def set_trigger_enabled(self, trigger_id: str, enabled: bool) -> None:
        self.dispatch(a.SetTriggerEnabled(trigger_id=trigger_id, enabled=enabled))

    def find_trigger(self, trigger_id: str) -> Optional[InterventionTrigger]:
        return find_trigger(self._state.triggers, trigger_id)

    # ========== 对话 ==========

    def open_conversation(
        self, mode: ConversationMode, context: Optional[ConversationContext] = None
    ) -> str:
        """Open a fresh session; returns its session id."""
        state = self.dispatch(a.OpenConversation(mode=ConversationMode(mode), context=context))
        return state.conversation.session_id

    def close_conversation(self) -> None:
        self.dispatch(a.CloseConversation())

    def add_message(
        self,
        role: str,
        content: str,
        suggested_actions: Sequence[SuggestedAction] = (),
    ) -> Optional[str]:
        """Append to the open session; returns the message id, None if closed."""
        before = self._state.conversation
        state = self.dispatch(a.AddMessage(
            role=getattr(role, "value", role),
            content=content,
            suggested_actions=tuple(suggested_actions),
        ))
        if state.conversation is before:
            return None
        return state.conversation.messages[-1].id

    def deliver_reply(
        self,
        session_id: str,
        role: str,
        content: str,
        suggested_actions: Sequence[SuggestedAction] = (),
    ) -> bool:
        """Append an AI reply if `session_id` is still the open session."""
        before = self._state.conversation
        state = self.dispatch(a.DeliverReply(
            session_id=session_id,
            role=getattr(role, "value", role),
            content=content,
            suggested_actions=tuple(suggested_actions),
        ))
        return state.conversation is not before

    def confirm_action(
        self, message_id: str, action_id: str, params: Optional[Mapping[str, Any]] = None
    ) -> None:
        self.dispatch(a.ConfirmAction(message_id=message_id, action_id=action_id, params=dict(params or {})))

    # ========== MoSCoW ==========

    def add_moscow_suggestion(self, suggestion: MoSCoWSuggestion) -> None:
        self.dispatch(a.AddMoSCoWSuggestion(suggestion=suggestion))

    def confirm_moscow_suggestion(self, task_id: str) -> None:
        self.dispatch(a.ConfirmMoSCoWSuggestion(task_id=task_id))

    def dismiss_moscow_suggestion(self, task_id: str) -> None:
        self.dispatch(a.DismissMoSCoWSuggestion(task_id=task_id))

    # ========== DDL 追踪 ==========

    def record_deadline_postpone(self, task_id: str) -> int:
        """Returns the new postpone count for the task."""
        state = self.dispatch(a.RecordDeadlinePostpone(task_id=task_id))
        return state.deadline_postpone_map[task_id]

    def clear_deadline_postpone(self, task_id: str) -> None:
        self.dispatch(a.ClearDeadlinePostpone(task_id=task_id))

    # ========== 复盘 ==========

    def add_reflection(self, reflection: TaskReflection) -> None:
        self.dispatch(a.AddReflection(reflection=reflection))

    def add_summary(self, summary: PeriodSummary) -> None:
        self.dispatch(a.AddSummary(summary=summary))

    def update_summary(self, summary_id: str, updates: Dict[str, Any]) -> None:
        self.dispatch(a.UpdateSummary(summary_id=summary_id, updates=dict(updates)))

    def summaries_by_type(self, summary_type: SummaryType) -> List[PeriodSummary]:
        return summaries_by_type(self._state.summaries, SummaryType(summary_type))

    def summary_by_id(self, summary_id: str) -> Optional[PeriodSummary]:
        return summary_by_id(self._state.summaries, summary_id)

    # ========== 数据管理 ==========

    def reset(self) -> None:
        self.dispatch(a.ResetPlanner(triggers=self._default_triggers))
