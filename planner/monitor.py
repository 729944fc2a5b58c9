"""
Monitor Engine: one health check per tick.

tick(inputs):
1. collect the health snapshot from CRUD inputs + planner state
2. evaluate the traffic-light status
3. replace the snapshot in the store (status coupling happens in the reducer)
4. select at most one eligible trigger
5. fire it unless an intervention is already active
6. log `system.monitor_tick`

The cadence belongs to the caller (see scheduler.monitor_tick).
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from planner.event_log import EntityType, EventEntity, EventType
from planner.health import OverallStatus, collect_snapshot, evaluate_status, with_status
from planner.interventions import Intervention
from planner.logger import get_logger
from planner.models import PlannerInputs
from planner.store import PlannerStore
from planner.triggers import TriggerEvaluator

logger = get_logger("monitor")

MONITOR_ENTITY = EventEntity(type=EntityType.SYSTEM, id="monitor")


@dataclass(frozen=True)
class TickResult:
    status: OverallStatus
    selected_trigger_id: Optional[str] = None
    intervention: Optional[Intervention] = None


class MonitorEngine:
    def __init__(
        self,
        store: PlannerStore,
        evaluator: Optional[TriggerEvaluator] = None,
    ):
        self.store = store
        self.evaluator = evaluator or TriggerEvaluator()
        self.session_started_at: datetime = store.now()
        self.last_tick_at: Optional[datetime] = None
        self._running = False

    # ========== 生命周期 ==========

    def start(self, inputs: Optional[PlannerInputs] = None) -> Optional[TickResult]:
        """Mark monitoring active; runs an immediate tick when inputs are given."""
        if self._running:
            logger.info("Monitor already running")
            return None
        logger.info("Monitor starting")
        self._running = True
        self.store.start_monitoring()
        if inputs is not None:
            return self.tick(inputs)
        return None

    def stop(self) -> None:
        if not self._running:
            return
        logger.info("Monitor stopping")
        self._running = False
        self.store.stop_monitoring()

    def is_active(self) -> bool:
        return self._running

    # ========== 主循环 ==========

    def tick(self, inputs: PlannerInputs) -> TickResult:
        now = self.store.now()
        state = self.store.state

        snapshot = collect_snapshot(
            inputs,
            state.events,
            [r.energy_state for r in state.reflections],
            state.deadline_postpone_map,
            self.session_started_at,
            now,
        )
        evaluation = evaluate_status(snapshot, now)
        snapshot = self.store.replace_health_snapshot(with_status(snapshot, evaluation))

        selected = self.evaluator.select(self.store.state.triggers, snapshot, now)
        fired = None
        if selected is not None:
            if self.store.state.current_intervention is None:
                fired = self.store.trigger_intervention(selected.id, selected.type)
            else:
                logger.debug(f"Trigger {selected.id} eligible but an intervention is active")

        self.store.add_event(
            EventType.SYSTEM_MONITOR_TICK,
            MONITOR_ENTITY,
            {
                "status": evaluation.status.value,
                "metrics": {
                    "time_since_last_completion": snapshot.time_since_last_completion,
                    "today_completion_rate": snapshot.today_completion_rate,
                    "overdue_tasks_count": snapshot.overdue_tasks_count,
                },
            },
        )
        self.last_tick_at = now
        logger.info(
            f"Tick: status={evaluation.status.value} score={evaluation.score} "
            f"trigger={selected.id if selected else None}"
        )

        return TickResult(
            status=evaluation.status,
            selected_trigger_id=selected.id if selected else None,
            intervention=fired,
        )

    def status_summary(self) -> Dict[str, Any]:
        state = self.store.state
        current = state.current_intervention
        return {
            "is_running": self._running,
            "status": state.health.overall_status.value,
            "reasons": list(state.health.status_reasons),
            "last_check": self.last_tick_at.isoformat() if self.last_tick_at else state.monitoring.last_check_time,
            "current_intervention": current.trigger_type.value if current else None,
        }
