"""
Pure reducers: (state, action, now) -> state.

Each action type maps to exactly one handler in REDUCERS. Handlers that need
to log an event do it through `_log`, which appends to the event log of the
state being built, so every side effect of an action lands in the same new
record.

Coupled effects are spelled out here instead of being left to call sites:
- a change of overall health status logs one `system.status_changed` event
  and moves the monitoring mode (red -> alert, yellow -> watching)
- firing a friend/coach trigger opens a conversation seeded with the
  trigger's message
- resolving or dismissing closes the conversation and stamps the trigger's
  cooldown
"""
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Type

from planner import actions as a
from planner.config_manager import config
from planner.conversation import (
    ConfirmedAction,
    ConversationContext,
    ConversationMode,
    ConversationSession,
    TriggerContext,
    build_message,
    is_assistant_message,
)
from planner.event_log import (
    EntityType,
    EventEntity,
    EventSource,
    EventType,
    Importance,
    create_event,
)
from planner.health import OverallStatus
from planner.interventions import push_history, start_intervention
from planner.logger import get_logger
from planner.reflections import add_reflection, add_summary, update_summary
from planner.state import MonitoringMode, PlannerState, initial_state
from planner.trackers import (
    clear_postpone,
    confirm_suggestion,
    dismiss_suggestion,
    record_postpone,
    upsert_suggestion,
)
from planner.triggers import ResponseLevel, find_trigger

logger = get_logger("reducers")

Reducer = Callable[[PlannerState, Any, datetime], PlannerState]

MONITOR_ENTITY = EventEntity(type=EntityType.SYSTEM, id="monitor", name="Monitor")
HEALTH_ENTITY = EventEntity(type=EntityType.SYSTEM, id="health")
CONVERSATION_ENTITY = EventEntity(type=EntityType.SYSTEM, id="conversation")

# 健康状态 -> 监测模式
STATUS_MODE_TRANSITIONS = {
    OverallStatus.RED: MonitoringMode.ALERT,
    OverallStatus.YELLOW: MonitoringMode.WATCHING,
}

_ROLE_SOURCES = {
    "user": EventSource.USER,
    "friend": EventSource.AI_FRIEND,
    "coach": EventSource.AI_COACH,
    "system": EventSource.SYSTEM,
}


def _log(
    state: PlannerState,
    now: datetime,
    event_type: EventType,
    entity: EventEntity,
    payload: Optional[Mapping[str, Any]] = None,
    **metadata: Any,
) -> PlannerState:
    event = create_event(event_type, entity, payload, metadata or None, now=now)
    return replace(state, events=state.events.append(event))


# --- Monitoring ---

def _set_monitoring_status(state: PlannerState, status: MonitoringMode, now: datetime) -> PlannerState:
    previous = state.monitoring.status
    if previous == status:
        return state
    state = replace(
        state,
        monitoring=replace(state.monitoring, status=status, last_check_time=now.isoformat()),
    )
    return _log(
        state, now, EventType.SYSTEM_STATUS_CHANGED, MONITOR_ENTITY,
        {"from": previous.value, "to": status.value},
    )


def start_monitoring(state: PlannerState, action: a.StartMonitoring, now: datetime) -> PlannerState:
    state = replace(
        state,
        monitoring=replace(state.monitoring, is_active=True, status=MonitoringMode.WATCHING),
    )
    return _log(state, now, EventType.SYSTEM_MONITOR_TICK, MONITOR_ENTITY, {"action": "start"})


def stop_monitoring(state: PlannerState, action: a.StopMonitoring, now: datetime) -> PlannerState:
    return replace(
        state,
        monitoring=replace(state.monitoring, is_active=False, status=MonitoringMode.IDLE),
    )


def update_monitoring_status(
    state: PlannerState, action: a.UpdateMonitoringStatus, now: datetime
) -> PlannerState:
    return _set_monitoring_status(state, MonitoringMode(action.status), now)


def replace_health_snapshot(
    state: PlannerState, action: a.ReplaceHealthSnapshot, now: datetime
) -> PlannerState:
    previous = state.health.overall_status
    snapshot = replace(action.snapshot, last_updated=now.isoformat())
    state = replace(state, health=snapshot)

    current = snapshot.overall_status
    if current == previous:
        return state

    importance = Importance.CRITICAL if current == OverallStatus.RED else Importance.MEDIUM
    state = _log(
        state, now, EventType.SYSTEM_STATUS_CHANGED, HEALTH_ENTITY,
        {"from": previous.value, "to": current.value, "reasons": list(snapshot.status_reasons)},
        importance=importance,
    )

    mode = STATUS_MODE_TRANSITIONS.get(current)
    if mode is not None:
        state = _set_monitoring_status(state, mode, now)
    return state


# --- Events ---

def add_event(state: PlannerState, action: a.AddEvent, now: datetime) -> PlannerState:
    return _log(state, now, action.type, action.entity, action.payload, **dict(action.metadata or {}))


# --- Interventions ---

def _open_conversation(
    state: PlannerState,
    mode: ConversationMode,
    context: Optional[ConversationContext],
    now: datetime,
) -> PlannerState:
    state = replace(state, conversation=ConversationSession.opened(mode, context))
    return _log(
        state, now, EventType.CONVERSATION_STARTED, CONVERSATION_ENTITY,
        {"mode": ConversationMode(mode).value, "has_context": context is not None},
    )


def _close_conversation(state: PlannerState, now: datetime) -> PlannerState:
    closing = state.conversation
    state = replace(state, conversation=ConversationSession())
    if not closing.messages:
        return state
    return _log(
        state, now, EventType.CONVERSATION_ENDED, CONVERSATION_ENTITY,
        {"message_count": len(closing.messages), "mode": closing.mode.value},
    )


def _append_message(state: PlannerState, role: str, content: str, suggested, now: datetime) -> PlannerState:
    message = build_message(role, content, now, suggested)
    state = replace(state, conversation=state.conversation.with_message(message))
    event_type = (
        EventType.CONVERSATION_USER_MESSAGE if message.role == "user"
        else EventType.CONVERSATION_AI_RESPONSE
    )
    has_actions = bool(getattr(message, "suggested_actions", ()))
    return _log(
        state, now, event_type, CONVERSATION_ENTITY,
        {"role": message.role, "message_id": message.id, "has_actions": has_actions},
        source=_ROLE_SOURCES[message.role],
    )


def trigger_intervention(state: PlannerState, action: a.TriggerIntervention, now: datetime) -> PlannerState:
    trigger = find_trigger(state.triggers, action.trigger_id)
    if trigger is None:
        return state

    active = state.current_intervention
    if active is not None:
        logger.info(
            f"Dropped trigger {trigger.id}: intervention {active.id} "
            f"({active.trigger_id}) is still {active.status.value}"
        )
        return state

    intervention = start_intervention(trigger, action.trigger_type, now)
    state = replace(
        state,
        current_intervention=intervention,
        monitoring=replace(state.monitoring, status=MonitoringMode.INTERVENTION),
    )
    state = _log(
        state, now, EventType.INTERVENTION_TRIGGERED,
        EventEntity(type=EntityType.SYSTEM, id=intervention.id),
        {
            "trigger_id": trigger.id,
            "trigger_type": intervention.trigger_type.value,
            "level": trigger.response.level.value,
        },
        importance=Importance.HIGH,
    )

    level = trigger.response.level
    if level == ResponseLevel.POPUP:
        return state

    context = ConversationContext(
        trigger=TriggerContext(type=intervention.trigger_type, metrics=state.health),
    )
    state = _open_conversation(state, ConversationMode(level.value), context, now)
    return _append_message(state, level.value, trigger.response.message, (), now)


def acknowledge_intervention(
    state: PlannerState, action: a.AcknowledgeIntervention, now: datetime
) -> PlannerState:
    current = state.current_intervention
    if current is None:
        return state
    acknowledged = current.acknowledge(now)
    if acknowledged is current:
        return state
    state = replace(state, current_intervention=acknowledged)
    return _log(
        state, now, EventType.INTERVENTION_ACKNOWLEDGED,
        EventEntity(type=EntityType.SYSTEM, id=current.id),
        {"trigger_type": current.trigger_type.value},
    )


def escalate_intervention(
    state: PlannerState, action: a.EscalateIntervention, now: datetime
) -> PlannerState:
    current = state.current_intervention
    if current is not None:
        escalated = current.escalate()
        if escalated is not current:
            state = replace(state, current_intervention=escalated)
            state = _log(
                state, now, EventType.INTERVENTION_ESCALATED,
                EventEntity(type=EntityType.SYSTEM, id=current.id),
                {"from": current.current_level.value, "to": ResponseLevel.COACH.value},
                importance=Importance.HIGH,
            )

    # 无论是否有干预，都切换到 coach 模式
    if state.conversation.mode != ConversationMode.COACH:
        state = replace(state, conversation=replace(state.conversation, mode=ConversationMode.COACH))
    return state


def _finish_intervention(state: PlannerState, finished, now: datetime) -> PlannerState:
    state = replace(
        state,
        current_intervention=None,
        intervention_history=push_history(
            state.intervention_history, finished, config.INTERVENTION_HISTORY_CAPACITY
        ),
        monitoring=replace(state.monitoring, status=MonitoringMode.WATCHING),
    )
    state = _close_conversation(state, now)
    return _stamp_cooldown(state, finished.trigger_id, now)


def resolve_intervention(
    state: PlannerState, action: a.ResolveIntervention, now: datetime
) -> PlannerState:
    current = state.current_intervention
    if current is None:
        return state
    state = _finish_intervention(state, current.resolve(action.resolution, now), now)
    resolution = action.resolution
    return _log(
        state, now, EventType.INTERVENTION_RESOLVED,
        EventEntity(type=EntityType.SYSTEM, id=current.id),
        {
            "resolution": {
                "action": resolution.action,
                "outcome": resolution.outcome.value,
                "user_feedback": resolution.user_feedback,
            } if resolution else None,
        },
        importance=Importance.MEDIUM,
    )


def dismiss_intervention(
    state: PlannerState, action: a.DismissIntervention, now: datetime
) -> PlannerState:
    current = state.current_intervention
    if current is None:
        return state
    state = _finish_intervention(state, current.dismiss(now), now)
    return _log(
        state, now, EventType.INTERVENTION_DISMISSED,
        EventEntity(type=EntityType.SYSTEM, id=current.id),
        {"trigger_type": current.trigger_type.value},
    )


def _stamp_cooldown(state: PlannerState, trigger_id: str, now: datetime) -> PlannerState:
    triggers = tuple(t.stamped(now) if t.id == trigger_id else t for t in state.triggers)
    return replace(state, triggers=triggers)


def update_trigger_cooldown(
    state: PlannerState, action: a.UpdateTriggerCooldown, now: datetime
) -> PlannerState:
    return _stamp_cooldown(state, action.trigger_id, now)


def set_trigger_enabled(
    state: PlannerState, action: a.SetTriggerEnabled, now: datetime
) -> PlannerState:
    triggers = tuple(
        replace(t, enabled=action.enabled) if t.id == action.trigger_id else t
        for t in state.triggers
    )
    return replace(state, triggers=triggers)


# --- Conversation ---

def open_conversation(state: PlannerState, action: a.OpenConversation, now: datetime) -> PlannerState:
    return _open_conversation(state, action.mode, action.context, now)


def close_conversation(state: PlannerState, action: a.CloseConversation, now: datetime) -> PlannerState:
    return _close_conversation(state, now)


def add_message(state: PlannerState, action: a.AddMessage, now: datetime) -> PlannerState:
    if not state.conversation.is_open:
        return state
    return _append_message(state, action.role, action.content, action.suggested_actions, now)


def deliver_reply(state: PlannerState, action: a.DeliverReply, now: datetime) -> PlannerState:
    if not state.conversation.accepts(action.session_id):
        logger.info(f"Discarded stale {action.role} reply for session {action.session_id}")
        return state
    return _append_message(state, action.role, action.content, action.suggested_actions, now)


def confirm_action(state: PlannerState, action: a.ConfirmAction, now: datetime) -> PlannerState:
    message = state.conversation.find_message(action.message_id)
    if message is None or not is_assistant_message(message):
        return state
    confirmed = ConfirmedAction(action_id=action.action_id, params=dict(action.params))
    state = replace(state, conversation=state.conversation.with_confirmed(action.message_id, confirmed))
    return _log(
        state, now, EventType.CONVERSATION_ACTION_TAKEN, CONVERSATION_ENTITY,
        {"message_id": action.message_id, "action_id": action.action_id, "params": dict(action.params)},
        source=EventSource.USER,
        importance=Importance.MEDIUM,
    )


# --- Trackers ---

def add_moscow_suggestion(
    state: PlannerState, action: a.AddMoSCoWSuggestion, now: datetime
) -> PlannerState:
    suggestions = upsert_suggestion(state.moscow_suggestions, action.suggestion, now.isoformat())
    return replace(state, moscow_suggestions=suggestions)


def confirm_moscow_suggestion(
    state: PlannerState, action: a.ConfirmMoSCoWSuggestion, now: datetime
) -> PlannerState:
    if action.task_id not in state.moscow_suggestions:
        return state
    return replace(state, moscow_suggestions=confirm_suggestion(state.moscow_suggestions, action.task_id))


def dismiss_moscow_suggestion(
    state: PlannerState, action: a.DismissMoSCoWSuggestion, now: datetime
) -> PlannerState:
    if action.task_id not in state.moscow_suggestions:
        return state
    return replace(state, moscow_suggestions=dismiss_suggestion(state.moscow_suggestions, action.task_id))


def record_deadline_postpone(
    state: PlannerState, action: a.RecordDeadlinePostpone, now: datetime
) -> PlannerState:
    postpones, _ = record_postpone(state.deadline_postpone_map, action.task_id)
    return replace(state, deadline_postpone_map=postpones)


def clear_deadline_postpone(
    state: PlannerState, action: a.ClearDeadlinePostpone, now: datetime
) -> PlannerState:
    if action.task_id not in state.deadline_postpone_map:
        return state
    return replace(state, deadline_postpone_map=clear_postpone(state.deadline_postpone_map, action.task_id))


# --- Reflections ---

def add_reflection_reducer(state: PlannerState, action: a.AddReflection, now: datetime) -> PlannerState:
    reflection = action.reflection
    state = replace(
        state,
        reflections=add_reflection(state.reflections, reflection, config.REFLECTION_CAPACITY),
    )
    return _log(
        state, now, EventType.REFLECTION_TASK_COMPLETED,
        EventEntity(type=EntityType.TASK, id=reflection.task_id, name=reflection.task_name),
        {"satisfaction": reflection.satisfaction_score, "energy_state": reflection.energy_state},
        source=EventSource.USER,
    )


def add_summary_reducer(state: PlannerState, action: a.AddSummary, now: datetime) -> PlannerState:
    summary = action.summary
    state = replace(state, summaries=add_summary(state.summaries, summary))
    return _log(
        state, now, EventType.SUMMARY_GENERATED,
        EventEntity(type=EntityType.SYSTEM, id=summary.id),
        {
            "summary_type": summary.type.value,
            "start_date": summary.start_date,
            "end_date": summary.end_date,
            "tasks_completed": summary.stats.tasks_completed,
            "completion_rate": summary.stats.completion_rate,
        },
    )


def update_summary_reducer(state: PlannerState, action: a.UpdateSummary, now: datetime) -> PlannerState:
    return replace(state, summaries=update_summary(state.summaries, action.summary_id, action.updates))


# --- Data management ---

def reset_planner(state: PlannerState, action: a.ResetPlanner, now: datetime) -> PlannerState:
    return initial_state(action.triggers)


REDUCERS: Dict[Type[a.Action], Reducer] = {
    a.StartMonitoring: start_monitoring,
    a.StopMonitoring: stop_monitoring,
    a.UpdateMonitoringStatus: update_monitoring_status,
    a.ReplaceHealthSnapshot: replace_health_snapshot,
    a.AddEvent: add_event,
    a.TriggerIntervention: trigger_intervention,
    a.AcknowledgeIntervention: acknowledge_intervention,
    a.EscalateIntervention: escalate_intervention,
    a.ResolveIntervention: resolve_intervention,
    a.DismissIntervention: dismiss_intervention,
    a.UpdateTriggerCooldown: update_trigger_cooldown,
    a.SetTriggerEnabled: set_trigger_enabled,
    a.OpenConversation: open_conversation,
    a.CloseConversation: close_conversation,
    a.AddMessage: add_message,
    a.DeliverReply: deliver_reply,
    a.ConfirmAction: confirm_action,
    a.AddMoSCoWSuggestion: add_moscow_suggestion,
    a.ConfirmMoSCoWSuggestion: confirm_moscow_suggestion,
    a.DismissMoSCoWSuggestion: dismiss_moscow_suggestion,
    a.RecordDeadlinePostpone: record_deadline_postpone,
    a.ClearDeadlinePostpone: clear_deadline_postpone,
    a.AddReflection: add_reflection_reducer,
    a.AddSummary: add_summary_reducer,
    a.UpdateSummary: update_summary_reducer,
    a.ResetPlanner: reset_planner,
}


def reduce(state: PlannerState, action: a.Action, now: datetime) -> PlannerState:
    """Apply one action. Unknown action types are a programming error."""
    handler = REDUCERS.get(type(action))
    if handler is None:
        raise TypeError(f"No reducer registered for {type(action).__name__}")
    return handler(state, action, now)
