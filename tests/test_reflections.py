import pytest

from planner.event_log import EventType
from planner.reflections import (
    PeriodSummary,
    SummaryStats,
    SummaryType,
    TaskReflection,
    add_reflection,
)


def _summary(summary_id: str, end_date: str, summary_type=SummaryType.WEEKLY) -> PeriodSummary:
    return PeriodSummary(
        id=summary_id,
        type=summary_type,
        start_date="2026-03-01",
        end_date=end_date,
        generated_at="2026-03-10T10:00:00",
        stats=SummaryStats(tasks_completed=4, completion_rate=80.0),
    )


def test_satisfaction_score_must_be_between_1_and_5():
    with pytest.raises(ValueError):
        TaskReflection(task_id="t1", task_name="x", completed_at="2026-03-10T10:00:00", satisfaction_score=6)
    with pytest.raises(ValueError):
        TaskReflection(task_id="t1", task_name="x", completed_at="2026-03-10T10:00:00", satisfaction_score=0)


def test_add_reflection_logs_event_and_feeds_newest_first(store):
    for index, energy in enumerate(["high", "low"]):
        store.add_reflection(TaskReflection(
            task_id=f"t{index}",
            task_name=f"task {index}",
            completed_at="2026-03-10T09:00:00",
            satisfaction_score=4,
            energy_state=energy,
        ))

    assert [r.task_id for r in store.state.reflections] == ["t1", "t0"]
    events = store.events_by_type(EventType.REFLECTION_TASK_COMPLETED)
    assert events[0].payload == {"satisfaction": 4, "energy_state": "low"}
    assert events[0].entity.id == "t1"


def test_reflections_are_capped():
    reflections = ()
    for index in range(4):
        reflection = TaskReflection(
            task_id=f"t{index}", task_name="x", completed_at="2026-03-10T09:00:00", satisfaction_score=3
        )
        reflections = add_reflection(reflections, reflection, capacity=2)
    assert [r.task_id for r in reflections] == ["t3", "t2"]


def test_summaries_stay_sorted_by_end_date(store):
    store.add_summary(_summary("w1", "2026-03-07"))
    store.add_summary(_summary("m2", "2026-02-28", SummaryType.MONTHLY))
    store.add_summary(_summary("w2", "2026-03-14"))

    assert [s.id for s in store.state.summaries] == ["w2", "w1", "m2"]
    assert [s.id for s in store.summaries_by_type(SummaryType.WEEKLY)] == ["w2", "w1"]
    assert len(store.events_by_type(EventType.SUMMARY_GENERATED)) == 3


def test_update_summary_patches_known_fields_only(store):
    store.add_summary(_summary("w1", "2026-03-07"))
    store.add_summary(_summary("w2", "2026-03-14"))

    store.update_summary("w1", {"user_notes": "good week", "id": "hijack", "bogus": 1})
    assert store.summary_by_id("w1").user_notes == "good week"
    assert store.summary_by_id("hijack") is None

    store.update_summary("w1", {"end_date": "2026-03-21"})
    assert [s.id for s in store.state.summaries] == ["w1", "w2"]

    before = store.state
    store.update_summary("missing", {"user_notes": "x"})
    assert store.state.summaries == before.summaries
