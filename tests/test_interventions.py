from planner.conversation import ConversationMode
from planner.event_log import EventType
from planner.interventions import (
    Intervention,
    InterventionStatus,
    Resolution,
    ResolutionOutcome,
    push_history,
)
from planner.state import MonitoringMode
from planner.triggers import ResponseLevel, TriggerEvaluator, TriggerType


def _types(store):
    return [e.type for e in store.recent_events(1000)]


def test_friend_trigger_opens_conversation_with_canned_message(store):
    trigger = store.find_trigger("idle_too_long")

    intervention = store.trigger_intervention("idle_too_long", TriggerType.IDLE_TOO_LONG)

    state = store.state
    assert intervention is state.current_intervention
    assert intervention.status == InterventionStatus.PENDING
    assert intervention.current_level == ResponseLevel.FRIEND
    assert state.monitoring.status == MonitoringMode.INTERVENTION
    assert state.conversation.is_open
    assert state.conversation.mode == ConversationMode.FRIEND
    assert [m.role for m in state.conversation.messages] == ["friend"]
    assert state.conversation.messages[0].content == trigger.response.message
    assert state.conversation.context.trigger.type == TriggerType.IDLE_TOO_LONG
    assert _types(store)[:3] == [
        EventType.CONVERSATION_AI_RESPONSE,
        EventType.CONVERSATION_STARTED,
        EventType.INTERVENTION_TRIGGERED,
    ]


def test_popup_trigger_opens_no_conversation(store):
    intervention = store.trigger_intervention("deadline_inconsistency")

    assert intervention.current_level == ResponseLevel.POPUP
    assert intervention.trigger_type == TriggerType.DEADLINE_INCONSISTENCY
    assert store.state.conversation.is_open is False
    assert store.state.monitoring.status == MonitoringMode.INTERVENTION


def test_unknown_trigger_is_a_silent_noop(store):
    before = store.state
    assert store.trigger_intervention("removed_in_update") is None
    assert store.state is before


def test_second_trigger_while_active_is_dropped(store):
    first = store.trigger_intervention("idle_too_long")
    session_id = store.state.conversation.session_id

    assert store.trigger_intervention("quest_overdue") is None

    state = store.state
    assert state.current_intervention == first
    assert state.conversation.session_id == session_id
    assert len(store.events_by_type(EventType.INTERVENTION_TRIGGERED)) == 1


def test_escalate_pending_then_idempotent(store):
    store.trigger_intervention("idle_too_long")

    store.escalate_intervention()
    escalated = store.state.current_intervention
    assert escalated.status == InterventionStatus.IN_PROGRESS
    assert escalated.current_level == ResponseLevel.COACH
    assert store.state.conversation.mode == ConversationMode.COACH

    store.escalate_intervention()
    assert store.state.current_intervention == escalated
    assert len(store.events_by_type(EventType.INTERVENTION_ESCALATED)) == 1


def test_escalate_without_intervention_still_switches_to_coach(store):
    store.open_conversation(ConversationMode.FRIEND)

    store.escalate_intervention()

    assert store.state.current_intervention is None
    assert store.state.conversation.mode == ConversationMode.COACH
    assert store.events_by_type(EventType.INTERVENTION_ESCALATED) == []


def test_acknowledge_only_from_pending(store, clock):
    store.trigger_intervention("idle_too_long")
    clock.advance(minutes=2)

    store.acknowledge_intervention()
    acknowledged = store.state.current_intervention
    assert acknowledged.status == InterventionStatus.ACKNOWLEDGED
    assert acknowledged.acknowledged_at == clock().isoformat()

    store.acknowledge_intervention()
    assert store.state.current_intervention is acknowledged
    assert len(store.events_by_type(EventType.INTERVENTION_ACKNOWLEDGED)) == 1


def test_resolve_clears_slot_records_history_and_stamps_cooldown(store, clock):
    started = store.trigger_intervention("idle_too_long")
    clock.advance(minutes=15)

    store.resolve_intervention(Resolution(action="broke_task_down", outcome=ResolutionOutcome.PARTIAL))

    state = store.state
    assert state.current_intervention is None
    assert len(state.intervention_history) == 1
    finished = state.intervention_history[0]
    assert finished.id == started.id
    assert finished.status == InterventionStatus.RESOLVED
    assert finished.resolution.outcome == ResolutionOutcome.PARTIAL
    assert finished.resolved_at == clock().isoformat()
    assert state.monitoring.status == MonitoringMode.WATCHING
    assert state.conversation.is_open is False
    assert store.find_trigger("idle_too_long").last_triggered == clock().isoformat()
    assert len(store.events_by_type(EventType.INTERVENTION_RESOLVED)) == 1
    assert len(store.events_by_type(EventType.CONVERSATION_ENDED)) == 1

    evaluator = TriggerEvaluator()
    assert evaluator.is_on_cooldown(store.find_trigger("idle_too_long"), clock())
    assert evaluator.is_on_cooldown(store.find_trigger("idle_too_long"), clock.advance(minutes=61)) is False


def test_dismiss_behaves_like_resolve_without_payload(store, clock):
    store.trigger_intervention("deadline_inconsistency")
    clock.advance(minutes=1)

    store.dismiss_intervention()

    state = store.state
    assert state.current_intervention is None
    assert state.intervention_history[0].status == InterventionStatus.DISMISSED
    assert store.find_trigger("deadline_inconsistency").last_triggered == clock().isoformat()
    assert len(store.events_by_type(EventType.INTERVENTION_DISMISSED)) == 1
    # popup 从未打开对话，关闭时不记 ended
    assert store.events_by_type(EventType.CONVERSATION_ENDED) == []


def test_resolve_and_dismiss_without_active_intervention_are_noops(store):
    before = store.state
    store.resolve_intervention(None)
    store.dismiss_intervention()
    store.acknowledge_intervention()
    assert store.state is before


def test_after_resolution_a_new_trigger_can_fire(store):
    store.trigger_intervention("idle_too_long")
    store.dismiss_intervention()

    second = store.trigger_intervention("quest_overdue")

    assert second is not None
    assert second.current_level == ResponseLevel.COACH
    assert store.state.conversation.mode == ConversationMode.COACH


def test_history_is_bounded_newest_first():
    history = ()
    for index in range(5):
        item = Intervention(
            id=f"int_{index}",
            trigger_id="t",
            trigger_type=TriggerType.IDLE_TOO_LONG,
            started_at="2026-03-10T10:00:00",
            status=InterventionStatus.DISMISSED,
        )
        history = push_history(history, item, capacity=3)

    assert [i.id for i in history] == ["int_4", "int_3", "int_2"]


def test_trigger_enable_toggle_and_manual_cooldown(store):
    store.set_trigger_enabled("focus_lost", True)
    assert store.find_trigger("focus_lost").enabled is True

    store.update_trigger_cooldown("focus_lost")
    assert store.find_trigger("focus_lost").last_triggered == store.now().isoformat()
