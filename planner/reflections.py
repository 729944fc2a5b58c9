"""
Task reflections and period summaries.

Reflections are kept newest first and capped; their energy states feed the
health snapshot's energy pattern. Summaries stay sorted by end date, newest
first.
"""
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from planner.config_manager import config
from planner.dates import parse_local_date, parse_timestamp


class SummaryType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class ReflectionAnalysis:
    """AI 复盘分析结果"""
    summary: str
    belief_patterns: Tuple[str, ...] = ()
    limiting_belief_alerts: Tuple[str, ...] = ()
    reframe_suggestions: Tuple[str, ...] = ()
    emotional_insights: Tuple[str, ...] = ()
    growth_suggestions: Tuple[str, ...] = ()
    affirmation: Optional[str] = None


@dataclass(frozen=True)
class TaskReflection:
    task_id: str
    task_name: str
    completed_at: str
    satisfaction_score: int          # 1-5
    energy_state: str = "medium"     # high / medium / low
    good_points: str = ""
    improvements: str = ""
    delay_reason: Optional[str] = None
    blocker_action: Optional[str] = None
    ai_analysis: Optional[ReflectionAnalysis] = None

    def __post_init__(self):
        if not 1 <= int(self.satisfaction_score) <= 5:
            raise ValueError(f"satisfaction_score must be 1-5, got {self.satisfaction_score}")


@dataclass(frozen=True)
class SummaryStats:
    tasks_completed: int = 0
    tasks_created: int = 0
    completion_rate: float = 0.0
    avg_satisfaction: float = 0.0
    total_focus_time: int = 0


@dataclass(frozen=True)
class SummaryInsights:
    top_accomplishments: Tuple[str, ...] = ()
    common_blockers: Tuple[str, ...] = ()
    growth_areas: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StatusChange:
    from_status: str
    to_status: str
    timestamp: str


@dataclass(frozen=True)
class PeriodSummary:
    id: str
    type: SummaryType
    start_date: str
    end_date: str
    generated_at: str
    stats: SummaryStats = field(default_factory=SummaryStats)
    insights: SummaryInsights = field(default_factory=SummaryInsights)
    task_reflections: Tuple[TaskReflection, ...] = ()
    intervention_count: int = 0
    status_changes: Tuple[StatusChange, ...] = ()
    user_notes: Optional[str] = None


# Fields a caller may not overwrite through update_summary
_IMMUTABLE_SUMMARY_FIELDS = frozenset({"id"})


def _end_sort_key(summary: PeriodSummary):
    day = parse_local_date(summary.end_date)
    if day is not None:
        return day.isoformat()
    stamp = parse_timestamp(summary.end_date)
    return stamp.date().isoformat() if stamp else ""


def add_reflection(
    reflections: Tuple[TaskReflection, ...],
    reflection: TaskReflection,
    capacity: int = config.REFLECTION_CAPACITY,
) -> Tuple[TaskReflection, ...]:
    return ((reflection,) + reflections)[:capacity]


def add_summary(summaries: Tuple[PeriodSummary, ...], summary: PeriodSummary) -> Tuple[PeriodSummary, ...]:
    return tuple(sorted(summaries + (summary,), key=_end_sort_key, reverse=True))


def update_summary(
    summaries: Tuple[PeriodSummary, ...],
    summary_id: str,
    updates: Mapping[str, Any],
) -> Tuple[PeriodSummary, ...]:
    """Patch one summary; unknown ids and unknown field names are ignored."""
    allowed = {f.name for f in fields(PeriodSummary)} - _IMMUTABLE_SUMMARY_FIELDS
    patch: Dict[str, Any] = {k: v for k, v in updates.items() if k in allowed}
    if not patch:
        return summaries
    updated = tuple(replace(s, **patch) if s.id == summary_id else s for s in summaries)
    if "end_date" in patch:
        updated = tuple(sorted(updated, key=_end_sort_key, reverse=True))
    return updated


def summaries_by_type(summaries: Tuple[PeriodSummary, ...], summary_type: SummaryType) -> List[PeriodSummary]:
    return [s for s in summaries if s.type == summary_type]


def summary_by_id(summaries: Tuple[PeriodSummary, ...], summary_id: str) -> Optional[PeriodSummary]:
    for summary in summaries:
        if summary.id == summary_id:
            return summary
    return None
