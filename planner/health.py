"""
Health Snapshot: "how is the user doing right now".

The snapshot is a point-in-time view recomputed on every monitoring tick and
replaced wholesale in the store. Collection reads the CRUD inputs plus the
planner's own event log, reflections and postpone tracker; every hierarchy
figure goes through the status resolver so locked entities never count.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from planner.config_manager import config
from planner.dates import days_remaining, minutes_between, parse_deadline, parse_timestamp
from planner.event_log import EventLog, EventType
from planner.models import ChapterDisplayStatus, EntityStatus, PlannerInputs, Quest
from planner.status_resolver import (
    effective_chapter_status_in,
    effective_quest_status,
    effective_season_status,
)


class OverallStatus(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class WeeklyTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class EnergyLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskAction(str, Enum):
    ACCELERATE = "accelerate"
    PRUNE = "prune"
    DELEGATE = "delegate"
    EXTEND = "extend"


@dataclass(frozen=True)
class AtRiskQuest:
    quest_id: str
    quest_title: str
    deadline: str
    current_progress: float
    required_daily_progress: float
    risk_level: RiskLevel
    suggested_action: RiskAction


@dataclass(frozen=True)
class HealthSnapshot:
    # 实时指标
    time_since_last_completion: int = 0          # 分钟
    today_completion_rate: float = 100.0         # 0-100
    today_completed_count: int = 0
    today_total_count: int = 0
    weighted_completion_rate: float = 100.0      # 一二三方法加权

    # 风险指标
    overdue_tasks_count: int = 0
    overdue_quests_count: int = 0
    overdue_chapters_count: int = 0
    inconsistent_deadlines_count: int = 0
    deadline_postpone_map: Dict[str, int] = field(default_factory=dict)
    at_risk_quests: Tuple[AtRiskQuest, ...] = ()

    # 趋势指标
    weekly_trend: WeeklyTrend = WeeklyTrend.STABLE
    energy_pattern: EnergyLevel = EnergyLevel.MEDIUM

    # 综合状态
    overall_status: OverallStatus = OverallStatus.GREEN
    status_reasons: Tuple[str, ...] = ()
    last_updated: Optional[str] = None

    def metric(self, name: str):
        """Metric lookup by attribute name; unknown names yield None."""
        if name.startswith("_") or name == "metric":
            return None
        return getattr(self, name, None)


@dataclass(frozen=True)
class StatusEvaluation:
    status: OverallStatus
    reasons: Tuple[str, ...]
    score: int


_ENERGY_SCORES = {
    EnergyLevel.HIGH.value: 3,
    EnergyLevel.MEDIUM.value: 2,
    EnergyLevel.LOW.value: 1,
}

_PRODUCTIVE_EVENTS = (EventType.TASK_COMPLETED, EventType.TASK_CHECKLIST_TICK)


# ==================== 指标收集 ====================

def time_since_last_completion(
    events: EventLog,
    inputs: PlannerInputs,
    session_started_at: datetime,
    now: datetime,
) -> int:
    """Minutes since the newest productive output."""
    for event in events.events:
        if event.type in _PRODUCTIVE_EVENTS:
            stamp = parse_timestamp(event.timestamp)
            if stamp is not None:
                return minutes_between(stamp, now)

    archived = [parse_timestamp(t.archived_at) for t in inputs.archived_tasks]
    archived = [stamp for stamp in archived if stamp is not None]
    if archived:
        return minutes_between(max(archived), now)

    return minutes_between(session_started_at, now)


def _today_tasks(inputs: PlannerInputs, now: datetime):
    today_start = datetime.combine(now.date(), datetime.min.time())
    result = []
    for task in inputs.tasks:
        created = parse_timestamp(task.created_at)
        if created is not None and created >= today_start:
            result.append(task)
    return result


def completion_rates(inputs: PlannerInputs, now: datetime) -> Tuple[float, float, int, int]:
    """
    Return (today_rate, weighted_rate, completed_count, total_count).

    Both rates are 100 when nothing was created today.
    """
    tasks = _today_tasks(inputs, now)
    completed = sum(1 for t in tasks if t.completed)
    rate = (completed / len(tasks)) * 100 if tasks else 100.0

    total_weight = 0.0
    completed_weight = 0.0
    for task in tasks:
        weight = config.TASK_WEIGHTS.get(task.task_type or "creative", config.DEFAULT_TASK_WEIGHT)
        total_weight += weight
        if task.completed:
            completed_weight += weight
    weighted = (completed_weight / total_weight) * 100 if total_weight > 0 else 100.0

    return rate, weighted, completed, len(tasks)


def count_overdue_tasks(inputs: PlannerInputs, now: datetime) -> int:
    count = 0
    for task in inputs.tasks:
        if task.completed:
            continue
        deadline = parse_deadline(task.deadline)
        if deadline is not None and deadline < now:
            count += 1
    return count


def count_overdue_quests(inputs: PlannerInputs, now: datetime) -> int:
    count = 0
    for quest in inputs.quests:
        if effective_quest_status(quest, inputs.seasons, now) != EntityStatus.ACTIVE:
            continue
        deadline = parse_deadline(quest.deadline)
        if deadline is not None and deadline < now:
            count += 1
    return count


def count_overdue_chapters(inputs: PlannerInputs, now: datetime) -> int:
    count = 0
    for season in inputs.seasons:
        if effective_season_status(season, now) != EntityStatus.ACTIVE:
            continue
        for chapter in season.chapters:
            status = effective_chapter_status_in(season, chapter, now)
            if status == ChapterDisplayStatus.OVERDUE_UNFINISHED:
                count += 1
    return count


def count_inconsistent_deadlines(inputs: PlannerInputs) -> int:
    """Task deadline after its quest's, plus quest deadline after its chapter's."""
    count = 0

    for task in inputs.tasks:
        task_deadline = parse_deadline(task.deadline)
        if task_deadline is None or not task.linked_quest_id:
            continue
        quest = inputs.find_quest(task.linked_quest_id)
        quest_deadline = parse_deadline(quest.deadline) if quest else None
        if quest_deadline is not None and task_deadline > quest_deadline:
            count += 1

    for quest in inputs.quests:
        quest_deadline = parse_deadline(quest.deadline)
        if quest_deadline is None or not quest.linked_chapter_id or not quest.season_id:
            continue
        season = inputs.find_season(quest.season_id)
        chapter = season.find_chapter(quest.linked_chapter_id) if season else None
        chapter_deadline = parse_deadline(chapter.deadline) if chapter else None
        if chapter_deadline is not None and quest_deadline > chapter_deadline:
            count += 1

    return count


def analyze_quest_risks(
    quests: Iterable[Quest],
    seasons: Sequence = (),
    now: Optional[datetime] = None,
) -> List[AtRiskQuest]:
    current = now or datetime.now()
    at_risk: List[AtRiskQuest] = []

    for quest in quests:
        if effective_quest_status(quest, seasons, current) != EntityStatus.ACTIVE:
            continue
        deadline = parse_deadline(quest.deadline)
        if deadline is None:
            continue

        progress = quest.progress or 0
        remaining = days_remaining(deadline, current)

        if remaining <= 0:
            at_risk.append(AtRiskQuest(
                quest_id=quest.id,
                quest_title=quest.title,
                deadline=quest.deadline,
                current_progress=progress,
                required_daily_progress=100.0,
                risk_level=RiskLevel.CRITICAL,
                suggested_action=RiskAction.PRUNE,
            ))
        elif remaining <= config.AT_RISK_WINDOW_DAYS:
            required = (100 - progress) / remaining
            if required > config.AT_RISK_DAILY_PROGRESS:
                high = required > config.HIGH_RISK_DAILY_PROGRESS
                at_risk.append(AtRiskQuest(
                    quest_id=quest.id,
                    quest_title=quest.title,
                    deadline=quest.deadline,
                    current_progress=progress,
                    required_daily_progress=required,
                    risk_level=RiskLevel.HIGH if high else RiskLevel.MEDIUM,
                    suggested_action=RiskAction.EXTEND if high else RiskAction.ACCELERATE,
                ))

    return at_risk


def weekly_trend(events: EventLog, now: datetime) -> WeeklyTrend:
    one_week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)

    this_week = 0
    last_week = 0
    for event in events.by_type(EventType.TASK_COMPLETED):
        stamp = parse_timestamp(event.timestamp)
        if stamp is None:
            continue
        if stamp > one_week_ago:
            this_week += 1
        elif stamp > two_weeks_ago:
            last_week += 1

    if last_week == 0:
        return WeeklyTrend.STABLE

    ratio = this_week / last_week
    if ratio > config.TREND_IMPROVING_RATIO:
        return WeeklyTrend.IMPROVING
    if ratio < config.TREND_DECLINING_RATIO:
        return WeeklyTrend.DECLINING
    return WeeklyTrend.STABLE


def infer_energy_pattern(energy_states: Sequence[str]) -> EnergyLevel:
    """Average the newest reflections' energy (high 3 / medium 2 / low 1)."""
    recent = list(energy_states)[: config.ENERGY_SAMPLE_SIZE]
    if not recent:
        return EnergyLevel.MEDIUM

    average = sum(_ENERGY_SCORES.get(str(getattr(s, "value", s)), 1) for s in recent) / len(recent)
    if average > 2.3:
        return EnergyLevel.HIGH
    if average < 1.7:
        return EnergyLevel.LOW
    return EnergyLevel.MEDIUM


def collect_snapshot(
    inputs: PlannerInputs,
    events: EventLog,
    energy_states: Sequence[str],
    postpone_map: Mapping[str, int],
    session_started_at: datetime,
    now: Optional[datetime] = None,
) -> HealthSnapshot:
    """
    Recompute every metric from scratch.

    `overall_status` is left green; call `evaluate_status` on the result.
    """
    current = now or datetime.now()
    rate, weighted, completed, total = completion_rates(inputs, current)

    return HealthSnapshot(
        time_since_last_completion=time_since_last_completion(events, inputs, session_started_at, current),
        today_completion_rate=rate,
        today_completed_count=completed,
        today_total_count=total,
        weighted_completion_rate=weighted,
        overdue_tasks_count=count_overdue_tasks(inputs, current),
        overdue_quests_count=count_overdue_quests(inputs, current),
        overdue_chapters_count=count_overdue_chapters(inputs, current),
        inconsistent_deadlines_count=count_inconsistent_deadlines(inputs),
        deadline_postpone_map=dict(postpone_map),
        at_risk_quests=tuple(analyze_quest_risks(inputs.quests, inputs.seasons, current)),
        weekly_trend=weekly_trend(events, current),
        energy_pattern=infer_energy_pattern(energy_states),
        last_updated=current.isoformat(),
    )


# ==================== 状态评估 ====================

def evaluate_status(snapshot: HealthSnapshot, now: Optional[datetime] = None) -> StatusEvaluation:
    """
    Additive traffic-light score.

    0 = green, YELLOW_SCORE..RED_SCORE-1 = yellow, >= RED_SCORE = red.
    """
    current = now or datetime.now()
    reasons: List[str] = []
    score = 0

    # 规则 1: 长时间无产出
    if snapshot.time_since_last_completion > config.IDLE_THRESHOLD_MINUTES:
        score += 1
        hours = round(snapshot.time_since_last_completion / 60)
        reasons.append(f"No task completed for {hours} hours")

    # 规则 2: 今日完成率低 + 时间已晚
    if (
        current.hour >= config.EVENING_HOUR
        and snapshot.today_completion_rate < config.EVENING_COMPLETION_THRESHOLD
        and snapshot.today_total_count > 0
    ):
        score += 2
        reasons.append(f"Today's completion rate is only {snapshot.today_completion_rate:.0f}%")

    # 规则 3: 高风险副本
    critical = [
        q for q in snapshot.at_risk_quests
        if q.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
    ]
    if critical:
        score += 2
        reasons.append(f"{len(critical)} quest(s) at high risk")

    # 规则 4: DDL 多次推迟
    frequent = [c for c in snapshot.deadline_postpone_map.values() if c >= config.POSTPONE_ALERT_COUNT]
    if frequent:
        score += 1
        reasons.append(f"{len(frequent)} task deadline(s) postponed repeatedly")

    # 规则 5: 逾期任务
    if snapshot.overdue_tasks_count >= config.OVERDUE_TASKS_SEVERE:
        score += 2
        reasons.append(f"{snapshot.overdue_tasks_count} overdue task(s)")
    elif snapshot.overdue_tasks_count > 0:
        score += 1
        reasons.append(f"{snapshot.overdue_tasks_count} overdue task(s)")

    # 规则 6: 周趋势下降
    if snapshot.weekly_trend == WeeklyTrend.DECLINING:
        score += 1
        reasons.append("Completions this week are down from last week")

    if score >= config.RED_SCORE:
        status = OverallStatus.RED
    elif score >= config.YELLOW_SCORE:
        status = OverallStatus.YELLOW
    else:
        status = OverallStatus.GREEN

    return StatusEvaluation(status=status, reasons=tuple(reasons), score=score)


def with_status(snapshot: HealthSnapshot, evaluation: StatusEvaluation) -> HealthSnapshot:
    return replace(snapshot, overall_status=evaluation.status, status_reasons=evaluation.reasons)
