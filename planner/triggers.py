"""
Intervention triggers: configuration and evaluation.

Default triggers ship in config/intervention_triggers.yaml. The evaluator only
answers "may this trigger fire now?"; firing itself is a store action.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from planner.dates import parse_timestamp
from planner.exceptions import ConfigError
from planner.health import HealthSnapshot
from planner.logger import get_logger
from planner.paths import CONFIG_DIR

logger = get_logger("triggers")

TRIGGERS_CONFIG_PATH = CONFIG_DIR / "intervention_triggers.yaml"


class TriggerType(str, Enum):
    IDLE_TOO_LONG = "idle_too_long"
    DEADLINE_POSTPONED_TWICE = "deadline_postponed_twice"
    PROGRESS_SEVERELY_BEHIND = "progress_severely_behind"
    LOW_DAILY_COMPLETION = "low_daily_completion"
    QUEST_AT_RISK = "quest_at_risk"
    QUEST_OVERDUE = "quest_overdue"
    CHAPTER_OVERDUE = "chapter_overdue"
    DEADLINE_INCONSISTENCY = "deadline_inconsistency"
    ENERGY_DEPLETED = "energy_depleted"
    FOCUS_LOST = "focus_lost"


class ResponseLevel(str, Enum):
    POPUP = "popup"
    FRIEND = "friend"
    COACH = "coach"


LEVEL_SEVERITY = {
    ResponseLevel.POPUP: 1,
    ResponseLevel.FRIEND: 2,
    ResponseLevel.COACH: 3,
}

CUSTOM_METRIC = "custom"
OPERATORS = (">", "<", "==", ">=", "<=", "has_items")


@dataclass(frozen=True)
class TimeWindow:
    start: str  # "HH:MM"
    end: str


@dataclass(frozen=True)
class TriggerCondition:
    metric: str
    operator: str
    threshold: Union[float, str] = 0
    time_window: Optional[TimeWindow] = None


@dataclass(frozen=True)
class TriggerResponse:
    level: ResponseLevel
    message: str
    escalate_after: Optional[int] = None   # 分钟
    coach_prompt: Optional[str] = None


@dataclass(frozen=True)
class InterventionTrigger:
    id: str
    type: TriggerType
    condition: TriggerCondition
    response: TriggerResponse
    cooldown_minutes: int = 60
    last_triggered: Optional[str] = None
    enabled: bool = True

    def stamped(self, when: datetime) -> "InterventionTrigger":
        return replace(self, last_triggered=when.isoformat())


# ==================== 加载 ====================

def trigger_from_dict(raw: Dict[str, Any]) -> InterventionTrigger:
    """Build a trigger from a plain YAML/JSON mapping."""
    try:
        cond = raw["condition"]
        resp = raw["response"]
        window = cond.get("time_window")
        operator = cond["operator"]
        if operator not in OPERATORS:
            raise ValueError(f"unknown operator {operator!r}")
        return InterventionTrigger(
            id=raw["id"],
            type=TriggerType(raw["type"]),
            condition=TriggerCondition(
                metric=cond["metric"],
                operator=operator,
                threshold=cond.get("threshold", 0),
                time_window=TimeWindow(**window) if window else None,
            ),
            response=TriggerResponse(
                level=ResponseLevel(resp["level"]),
                message=resp["message"],
                escalate_after=resp.get("escalate_after"),
                coach_prompt=resp.get("coach_prompt"),
            ),
            cooldown_minutes=int(raw.get("cooldown_minutes", 60)),
            last_triggered=raw.get("last_triggered"),
            enabled=bool(raw.get("enabled", True)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(
            f"Invalid trigger definition {raw.get('id', '?') if isinstance(raw, dict) else raw!r}: {e}",
            config_path=str(TRIGGERS_CONFIG_PATH),
        ) from e


def load_default_triggers(path: Path = TRIGGERS_CONFIG_PATH) -> List[InterventionTrigger]:
    """
    加载默认触发器配置。

    Raises:
        ConfigError: 文件缺失或格式错误
    """
    if not path.exists():
        raise ConfigError(f"Trigger config not found: {path}", config_path=str(path))

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Trigger config is not valid YAML: {e}", config_path=str(path)) from e

    triggers = [trigger_from_dict(item) for item in data.get("triggers", [])]
    logger.debug(f"Loaded {len(triggers)} default triggers from {path}")
    return triggers


def merge_triggers(
    defaults: Sequence[InterventionTrigger],
    persisted: Sequence[InterventionTrigger],
) -> List[InterventionTrigger]:
    """
    Persisted triggers win (kept in persisted order); default ids missing from
    the persisted set are appended fresh.
    """
    persisted_ids = {t.id for t in persisted}
    new_triggers = [t for t in defaults if t.id not in persisted_ids]
    if new_triggers and persisted:
        logger.info(f"Adding new triggers: {[t.id for t in new_triggers]}")
    return list(persisted) + new_triggers


def find_trigger(triggers: Iterable[InterventionTrigger], trigger_id: str) -> Optional[InterventionTrigger]:
    for trigger in triggers:
        if trigger.id == trigger_id:
            return trigger
    return None


# ==================== 评估 ====================

def _parse_clock(value: str) -> Optional[int]:
    try:
        hours, minutes = value.split(":")
        return int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError):
        return None


class TriggerEvaluator:
    """
    Decide which triggers may fire against a snapshot.

    Pure reads: cooldown stamps live on the triggers themselves and are only
    written by intervention resolution/dismissal.
    """

    def is_on_cooldown(self, trigger: InterventionTrigger, now: datetime) -> bool:
        last = parse_timestamp(trigger.last_triggered)
        if last is None:
            return False
        return now - last < timedelta(minutes=trigger.cooldown_minutes)

    def is_in_time_window(self, trigger: InterventionTrigger, now: datetime) -> bool:
        window = trigger.condition.time_window
        if window is None:
            return True

        start = _parse_clock(window.start)
        end = _parse_clock(window.end)
        if start is None or end is None:
            return True

        current = now.hour * 60 + now.minute
        if start <= end:
            return start <= current <= end
        # 跨午夜窗口，如 22:00-02:00
        return current >= start or current <= end

    def condition_met(self, trigger: InterventionTrigger, snapshot: HealthSnapshot) -> bool:
        metric = trigger.condition.metric
        operator = trigger.condition.operator
        threshold = trigger.condition.threshold

        if metric == CUSTOM_METRIC:
            if trigger.type == TriggerType.DEADLINE_POSTPONED_TWICE:
                return any(
                    count >= float(threshold)
                    for count in snapshot.deadline_postpone_map.values()
                )
            return False

        value = snapshot.metric(metric)

        if operator == "has_items":
            return isinstance(value, (list, tuple, dict)) and len(value) > 0

        if isinstance(value, Enum):
            value = value.value
        if operator == "==":
            return value == threshold

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        try:
            limit = float(threshold)
        except (TypeError, ValueError):
            return False

        if operator == ">":
            return value > limit
        if operator == "<":
            return value < limit
        if operator == ">=":
            return value >= limit
        if operator == "<=":
            return value <= limit
        return False

    def eligible(
        self,
        triggers: Iterable[InterventionTrigger],
        snapshot: HealthSnapshot,
        now: datetime,
    ) -> List[InterventionTrigger]:
        result = []
        for trigger in triggers:
            if not trigger.enabled:
                continue
            if self.is_on_cooldown(trigger, now):
                logger.debug(f"{trigger.id} skipped (cooldown since {trigger.last_triggered})")
                continue
            if not self.is_in_time_window(trigger, now):
                logger.debug(f"{trigger.id} skipped (outside time window)")
                continue
            if self.condition_met(trigger, snapshot):
                result.append(trigger)
        return result

    def select(
        self,
        triggers: Iterable[InterventionTrigger],
        snapshot: HealthSnapshot,
        now: datetime,
    ) -> Optional[InterventionTrigger]:
        """Highest response level wins (coach > friend > popup); ties keep config order."""
        candidates = self.eligible(triggers, snapshot, now)
        if not candidates:
            return None
        selected = max(candidates, key=lambda t: LEVEL_SEVERITY[t.response.level])
        logger.info(f"Selected trigger {selected.id} (level: {selected.response.level.value})")
        return selected
