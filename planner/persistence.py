"""
Planner state persistence.

State <-> flat JSON-compatible dict. The event log is stored as a plain list
under `events`. Restoring overlays the persisted keys on a fresh initial state
and merges triggers so that triggers shipped after the user's last save are
not lost.
"""
import json
import os
from dataclasses import fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from planner.config_manager import config
from planner.event_log import PlannerEvent
from planner.exceptions import StateError
from planner.logger import get_logger
from planner.paths import get_data_dir
from planner.state import PlannerState, initial_state
from planner.triggers import InterventionTrigger, merge_triggers

logger = get_logger("persistence")

STATE_SCHEMA_VERSION = "1.0"
STATE_FILENAME = "planner_state.json"

_STATE_ADAPTER = TypeAdapter(PlannerState)
_TRIGGER_ADAPTER = TypeAdapter(InterventionTrigger)
_EVENT_ADAPTER = TypeAdapter(PlannerEvent)

STATE_FIELDS = frozenset(f.name for f in fields(PlannerState))


def state_to_dict(state: PlannerState) -> Dict[str, Any]:
    """Serialize the full state into JSON-compatible primitives."""
    data = _STATE_ADAPTER.dump_python(state, mode="json")
    data["events"] = data["events"]["events"]
    return data


def _restore_triggers(raw: Any) -> List[InterventionTrigger]:
    if not isinstance(raw, list):
        return []
    restored = []
    for item in raw:
        try:
            restored.append(_TRIGGER_ADAPTER.validate_python(item))
        except ValidationError as e:
            # 旧版本遗留的未知触发器，跳过而不是让整个状态失效
            trigger_id = item.get("id") if isinstance(item, dict) else None
            logger.warning(f"Skipping unreadable persisted trigger {trigger_id!r}: {e.error_count()} error(s)")
    return restored


def _restore_events(raw: Any) -> List[Dict[str, Any]]:
    """Keep the persisted events that still validate, newest first."""
    if not isinstance(raw, list):
        return []
    kept = []
    skipped = 0
    for item in raw[: config.EVENT_LOG_CAPACITY]:
        try:
            _EVENT_ADAPTER.validate_python(item)
        except ValidationError:
            skipped += 1
            continue
        kept.append(item)
    if skipped:
        logger.warning(f"Skipped {skipped} unreadable persisted event(s)")
    return kept


def restore_state(
    data: Optional[Mapping[str, Any]],
    defaults: Sequence[InterventionTrigger],
) -> PlannerState:
    """
    Rebuild a PlannerState from a persisted dict.

    Persisted keys override the initial state; unknown keys are ignored.
    Triggers are merged with `merge_triggers` (persisted wins, new defaults
    appended).

    Raises:
        StateError: persisted data does not match the state schema
    """
    base = initial_state(defaults)
    if not data:
        return base

    overlay = {k: v for k, v in data.items() if k in STATE_FIELDS}
    persisted_triggers = _restore_triggers(overlay.pop("triggers", None))
    events = _restore_events(overlay.pop("events", None))

    merged = _STATE_ADAPTER.dump_python(base, mode="json")
    merged.update(overlay)
    merged["triggers"] = []
    merged["events"] = {
        "events": events,
        "capacity": config.EVENT_LOG_CAPACITY,
    }

    try:
        state = _STATE_ADAPTER.validate_python(merged)
    except ValidationError as e:
        raise StateError(
            f"Persisted planner state is invalid: {e.error_count()} error(s)",
            corrupted_data=str(e)[:500],
        ) from e

    triggers = merge_triggers(defaults, persisted_triggers) if persisted_triggers else list(defaults)
    return replace(state, triggers=tuple(triggers))


def export_planner_data(state: PlannerState) -> str:
    """Pretty JSON dump of the full state."""
    return json.dumps(state_to_dict(state), ensure_ascii=False, indent=2)


class PlannerStateRepository:
    """
    JSON file storage for the planner state.

    A corrupt or unreadable file is logged and replaced by the initial state;
    it is never fatal.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_data_dir() / STATE_FILENAME

    def load(self, defaults: Sequence[InterventionTrigger]) -> PlannerState:
        if not self.path.exists():
            logger.info(f"No saved planner state at {self.path}, starting fresh")
            return initial_state(defaults)

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            data.pop("_meta", None)
            return restore_state(data, defaults)
        except (json.JSONDecodeError, OSError, AttributeError, StateError) as e:
            logger.error(f"Failed to load planner state from {self.path}: {e}")
            return initial_state(defaults)

    def save(self, state: PlannerState) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = state_to_dict(state)
        data["_meta"] = {
            "saved_at": datetime.now().isoformat(),
            "version": STATE_SCHEMA_VERSION,
        }

        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)
        return self.path

    def listener(self, previous: PlannerState, current: PlannerState, action) -> None:
        """Store listener: save after every state change."""
        self.save(current)
