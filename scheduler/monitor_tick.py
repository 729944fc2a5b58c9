"""
Monitor tick runner.

The planner core never schedules itself; whoever owns the clock (a cron job,
the web app's background loop, a test) calls `run_monitor_tick` every
`config.MONITOR_INTERVAL_MINUTES`. The runner honours the system pause mode
from config/system.yaml and never lets a failing tick escape.

Pause modes:
- normal: tick runs
- soft_pause / hard_pause / maintenance: tick skipped
"""
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

from planner.logger import get_logger
from planner.models import PlannerInputs
from planner.monitor import MonitorEngine, TickResult
from planner.paths import CONFIG_DIR

logger = get_logger("scheduler")

SYSTEM_CONFIG_PATH = CONFIG_DIR / "system.yaml"


def load_system_config(path: Path = SYSTEM_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load system configuration.
    On a missing or unreadable file, returns normal mode.
    """
    if not path.exists():
        return {"current_pause_mode": "normal"}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        logger.warning(f"Could not read {path}: {e}; assuming normal mode")
        return {"current_pause_mode": "normal"}


def get_pause_mode(path: Path = SYSTEM_CONFIG_PATH) -> str:
    return load_system_config(path).get("current_pause_mode", "normal")


def can_proceed(path: Path = SYSTEM_CONFIG_PATH) -> Tuple[bool, str]:
    """
    Check if the monitor may run.

    Returns:
        Tuple of (can_proceed: bool, reason: str)
    """
    mode = get_pause_mode(path)

    if mode == "normal":
        return True, "System running normally"
    elif mode == "soft_pause":
        return False, "Soft pause: monitoring suspended"
    elif mode == "hard_pause":
        return False, "Hard pause: all activity stopped"
    elif mode == "maintenance":
        return False, "Maintenance mode: manual repair only"
    else:
        return True, f"Unknown mode '{mode}', defaulting to normal"


def run_monitor_tick(
    engine: MonitorEngine,
    load_inputs: Callable[[], PlannerInputs],
    config_path: Path = SYSTEM_CONFIG_PATH,
) -> Optional[TickResult]:
    """
    Run one tick if allowed.

    Returns the tick result, or None when paused or when the tick failed
    (the failure is logged with its traceback).
    """
    can_run, reason = can_proceed(config_path)
    if not can_run:
        logger.info(f"Monitor tick skipped. {reason}")
        return None

    try:
        return engine.tick(load_inputs())
    except Exception as e:
        logger.error(f"Monitor tick failed: {e}", exc_info=True)
        return None
