from datetime import datetime, timedelta

import pytest

from planner.exceptions import ConfigError
from planner.health import EnergyLevel, HealthSnapshot
from planner.triggers import (
    InterventionTrigger,
    ResponseLevel,
    TimeWindow,
    TriggerCondition,
    TriggerEvaluator,
    TriggerResponse,
    TriggerType,
    load_default_triggers,
    merge_triggers,
    trigger_from_dict,
)

NOW = datetime(2026, 3, 10, 10, 0)


def _trigger(
    trigger_id: str,
    level: ResponseLevel = ResponseLevel.FRIEND,
    *,
    metric: str = "overdue_tasks_count",
    operator: str = ">",
    threshold=0,
    trigger_type: TriggerType = TriggerType.PROGRESS_SEVERELY_BEHIND,
    cooldown_minutes: int = 60,
    last_triggered=None,
    enabled: bool = True,
    time_window=None,
) -> InterventionTrigger:
    return InterventionTrigger(
        id=trigger_id,
        type=trigger_type,
        condition=TriggerCondition(metric=metric, operator=operator, threshold=threshold, time_window=time_window),
        response=TriggerResponse(level=level, message=f"{trigger_id} message"),
        cooldown_minutes=cooldown_minutes,
        last_triggered=last_triggered,
        enabled=enabled,
    )


def test_shipped_triggers_load():
    triggers = load_default_triggers()
    ids = [t.id for t in triggers]

    assert len(ids) == 10
    assert len(set(ids)) == 10
    assert {t.type for t in triggers} == set(TriggerType)
    focus = next(t for t in triggers if t.id == "focus_lost")
    assert focus.enabled is False
    popup = next(t for t in triggers if t.id == "deadline_inconsistency")
    assert popup.response.level == ResponseLevel.POPUP


def test_trigger_from_dict_rejects_bad_definitions():
    good = {
        "id": "x",
        "type": "idle_too_long",
        "condition": {"metric": "time_since_last_completion", "operator": ">", "threshold": 5},
        "response": {"level": "friend", "message": "hi"},
    }
    assert trigger_from_dict(good).cooldown_minutes == 60

    with pytest.raises(ConfigError):
        trigger_from_dict({**good, "condition": {**good["condition"], "operator": "~="}})
    with pytest.raises(ConfigError):
        trigger_from_dict({**good, "type": "not_a_type"})
    with pytest.raises(ConfigError):
        trigger_from_dict({"id": "y"})


def test_load_default_triggers_reports_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_default_triggers(tmp_path / "missing.yaml")


def test_merge_keeps_persisted_and_adds_new_defaults():
    stamp = "2026-03-09T08:00:00"
    defaults = [_trigger("A"), _trigger("B"), _trigger("C")]
    persisted = [_trigger("A", last_triggered=stamp)]

    merged = merge_triggers(defaults, persisted)

    assert [t.id for t in merged] == ["A", "B", "C"]
    assert merged[0].last_triggered == stamp
    assert merged[1].last_triggered is None
    assert merged[2].last_triggered is None


def test_cooldown_window():
    evaluator = TriggerEvaluator()
    recent = _trigger("t", last_triggered=(NOW - timedelta(minutes=30)).isoformat())
    stale = _trigger("t", last_triggered=(NOW - timedelta(minutes=61)).isoformat())

    assert evaluator.is_on_cooldown(recent, NOW) is True
    assert evaluator.is_on_cooldown(stale, NOW) is False
    assert evaluator.is_on_cooldown(_trigger("t"), NOW) is False


def test_time_window_including_midnight_crossing():
    evaluator = TriggerEvaluator()
    night = _trigger("night", time_window=TimeWindow(start="22:00", end="02:00"))
    day = _trigger("day", time_window=TimeWindow(start="09:00", end="17:00"))

    assert evaluator.is_in_time_window(night, datetime(2026, 3, 10, 23, 30))
    assert evaluator.is_in_time_window(night, datetime(2026, 3, 10, 1, 0))
    assert not evaluator.is_in_time_window(night, datetime(2026, 3, 10, 12, 0))
    assert evaluator.is_in_time_window(day, NOW)
    assert not evaluator.is_in_time_window(day, datetime(2026, 3, 10, 18, 0))


def test_condition_operators():
    evaluator = TriggerEvaluator()
    snapshot = HealthSnapshot(
        overdue_tasks_count=3,
        energy_pattern=EnergyLevel.LOW,
        deadline_postpone_map={"t1": 2},
    )

    assert evaluator.condition_met(_trigger("a", operator=">=", threshold=3), snapshot)
    assert not evaluator.condition_met(_trigger("b", operator=">", threshold=3), snapshot)
    assert evaluator.condition_met(
        _trigger("c", metric="energy_pattern", operator="==", threshold="low"), snapshot
    )
    assert not evaluator.condition_met(
        _trigger("d", metric="at_risk_quests", operator="has_items"), snapshot
    )
    assert evaluator.condition_met(
        _trigger("e", metric="custom", operator=">=", threshold=2,
                 trigger_type=TriggerType.DEADLINE_POSTPONED_TWICE),
        snapshot,
    )
    assert not evaluator.condition_met(_trigger("f", metric="no_such_metric"), snapshot)


def test_select_prefers_highest_level_then_config_order():
    evaluator = TriggerEvaluator()
    snapshot = HealthSnapshot(overdue_tasks_count=5)
    triggers = [
        _trigger("popup", ResponseLevel.POPUP),
        _trigger("friend_1", ResponseLevel.FRIEND),
        _trigger("friend_2", ResponseLevel.FRIEND),
        _trigger("coach_off", ResponseLevel.COACH, enabled=False),
        _trigger("coach_cooling", ResponseLevel.COACH, last_triggered=(NOW - timedelta(minutes=5)).isoformat()),
    ]

    assert evaluator.select(triggers, snapshot, NOW).id == "friend_1"
    assert evaluator.select(triggers, HealthSnapshot(), NOW) is None
