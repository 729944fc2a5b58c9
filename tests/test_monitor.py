from planner.event_log import EventType
from planner.health import OverallStatus
from planner.models import PlannerInputs, Quest, Season, Task
from planner.monitor import MonitorEngine
from planner.state import MonitoringMode


def _overdue_inputs(count: int) -> PlannerInputs:
    return PlannerInputs(tasks=[Task(id=f"t{i}", deadline="2026-03-01") for i in range(count)])


def test_quiet_tick_is_green_and_fires_nothing(store):
    engine = MonitorEngine(store)
    engine.start()

    result = engine.tick(PlannerInputs())

    assert result.status == OverallStatus.GREEN
    assert result.selected_trigger_id is None
    assert result.intervention is None
    assert store.state.current_intervention is None
    ticks = store.events_by_type(EventType.SYSTEM_MONITOR_TICK)
    assert ticks[0].payload["status"] == "green"


def test_tick_fires_the_highest_level_trigger(store):
    engine = MonitorEngine(store)

    result = engine.tick(_overdue_inputs(3))

    # 3 overdue tasks: progress_severely_behind (coach) beats popup / friend
    assert result.status == OverallStatus.YELLOW
    assert result.selected_trigger_id == "progress_severely_behind"
    assert result.intervention.trigger_id == "progress_severely_behind"
    assert store.state.monitoring.status == MonitoringMode.INTERVENTION
    assert len(store.events_by_type(EventType.INTERVENTION_TRIGGERED)) == 1


def test_tick_never_fires_while_an_intervention_is_active(store):
    engine = MonitorEngine(store)
    engine.tick(_overdue_inputs(3))
    active = store.state.current_intervention

    result = engine.tick(_overdue_inputs(4))

    assert result.intervention is None
    assert store.state.current_intervention == active
    assert len(store.events_by_type(EventType.INTERVENTION_TRIGGERED)) == 1


def test_cooldown_blocks_refire_after_resolution(store, clock):
    engine = MonitorEngine(store)
    engine.tick(_overdue_inputs(3))
    store.dismiss_intervention()

    clock.advance(minutes=30)
    assert engine.tick(_overdue_inputs(3)).selected_trigger_id is None

    clock.advance(minutes=240)
    assert engine.tick(_overdue_inputs(3)).selected_trigger_id == "progress_severely_behind"


def test_locked_quest_does_not_count_as_overdue(store):
    engine = MonitorEngine(store)
    inputs = PlannerInputs(
        seasons=[Season(id="s_future", start_date="2026-06-01")],
        quests=[Quest(id="q", season_id="s_future", deadline="2026-03-01")],
    )

    result = engine.tick(inputs)

    assert store.state.health.overdue_quests_count == 0
    assert result.selected_trigger_id is None


def test_start_stop_and_status_summary(store, clock):
    engine = MonitorEngine(store)
    assert engine.start(_overdue_inputs(1)) is not None
    assert engine.start() is None
    assert engine.is_active()

    summary = engine.status_summary()
    assert summary["is_running"] is True
    assert summary["status"] == "yellow"
    assert summary["last_check"] == clock().isoformat()
    assert summary["reasons"] == ["1 overdue task(s)"]

    engine.stop()
    assert engine.is_active() is False
    assert store.state.monitoring.status == MonitoringMode.IDLE
