"""
Planner HTTP surface: thin wrappers over PlannerStore actions and queries.

Missing references answer 404 only where the route names the resource
(a trigger, a message, a MoSCoW suggestion). Everything else keeps the
store's silent no-op semantics and just returns the resulting view.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field, TypeAdapter

from interface.intervention_alerts import InterventionAlerts
from planner.assistant import AssistantBridge
from planner.conversation import ConversationMode
from planner.event_log import EventType, PlannerEvent
from planner.exceptions import ResponderAuthError, ResponderError
from planner.interventions import Intervention, Resolution, ResolutionOutcome
from planner.logger import get_logger
from planner.models import PlannerInputs
from planner.monitor import MonitorEngine
from planner.persistence import PlannerStateRepository, export_planner_data, state_to_dict
from planner.reflections import PeriodSummary, SummaryType, TaskReflection
from planner.responders import ResponderReply, create_responders, load_model_config
from planner.store import PlannerStore
from planner.trackers import MoSCoWPriority, MoSCoWSuggestion
from planner.triggers import InterventionTrigger, load_default_triggers

logger = get_logger("api")

router = APIRouter()

_EVENTS = TypeAdapter(List[PlannerEvent])
_INTERVENTION = TypeAdapter(Optional[Intervention])
_INTERVENTIONS = TypeAdapter(List[Intervention])
_TRIGGERS = TypeAdapter(List[InterventionTrigger])
_SUMMARIES = TypeAdapter(List[PeriodSummary])
_INPUTS = TypeAdapter(PlannerInputs)
_REFLECTION = TypeAdapter(TaskReflection)
_SUMMARY = TypeAdapter(PeriodSummary)


# ========== Runtime ==========

class PlannerRuntime:
    """The store plus the collaborators the routes drive."""

    def __init__(self, store: PlannerStore, engine: MonitorEngine, assistant: AssistantBridge):
        self.store = store
        self.engine = engine
        self.assistant = assistant

    @classmethod
    def build(cls, store: PlannerStore, responders=None) -> "PlannerRuntime":
        if responders is None:
            responders = create_responders({
                mode.value: load_model_config(mode.value) for mode in ConversationMode
            })
        return cls(store, MonitorEngine(store), AssistantBridge(store, responders))


_runtime: Optional[PlannerRuntime] = None


def get_runtime() -> PlannerRuntime:
    """Lazily load the persisted state and wire the save/alert listeners."""
    global _runtime
    if _runtime is None:
        defaults = load_default_triggers()
        repository = PlannerStateRepository()
        store = PlannerStore(repository.load(defaults), default_triggers=defaults)
        store.subscribe(repository.listener)
        store.subscribe(InterventionAlerts.from_config())
        _runtime = PlannerRuntime.build(store)
        logger.info(f"Planner runtime ready (state file: {repository.path})")
    return _runtime


def get_store(runtime: PlannerRuntime = Depends(get_runtime)) -> PlannerStore:
    return runtime.store


# ========== Request models ==========

class TriggerRequest(BaseModel):
    trigger_id: str


class TriggerEnabledRequest(BaseModel):
    enabled: bool


class ResolveRequest(BaseModel):
    action: str = "user_resolved"
    outcome: ResolutionOutcome = ResolutionOutcome.SUCCESS
    user_feedback: Optional[str] = None


class OpenConversationRequest(BaseModel):
    mode: ConversationMode = ConversationMode.FRIEND


class MessageRequest(BaseModel):
    content: str = Field(min_length=1)


class ChatRequest(BaseModel):
    text: str = Field(min_length=1)
    context: Optional[Dict[str, Any]] = None


class InitialResponseRequest(BaseModel):
    extra_context: Optional[Dict[str, Any]] = None


class ConfirmActionRequest(BaseModel):
    action_id: str
    params: Dict[str, Any] = Field(default_factory=dict)


class MoSCoWRequest(BaseModel):
    task_id: str
    suggested_priority: MoSCoWPriority
    reason: str = ""
    confidence: float = Field(default=0.5, ge=0, le=1)
    current_priority: Optional[MoSCoWPriority] = None


class SummaryUpdateRequest(BaseModel):
    updates: Dict[str, Any]


# ========== Helpers ==========

def _conversation_view(store: PlannerStore) -> Dict[str, Any]:
    return state_to_dict(store.state)["conversation"]


def _intervention_view(store: PlannerStore) -> Dict[str, Any]:
    return {"current_intervention": _INTERVENTION.dump_python(store.state.current_intervention, mode="json")}


def _reply_view(reply: Optional[ResponderReply], store: PlannerStore) -> Dict[str, Any]:
    return {
        "reply": reply.model_dump(mode="json") if reply else None,
        "conversation": _conversation_view(store),
    }


def _responder_failure(e: ResponderError) -> HTTPException:
    logger.error(f"Responder call failed: {e}")
    status = 503 if isinstance(e, ResponderAuthError) else 502
    return HTTPException(status_code=status, detail=e.get_user_message())


# ========== State & events ==========

@router.get("/state")
def get_state(store: PlannerStore = Depends(get_store)):
    return state_to_dict(store.state)


@router.get("/status")
def get_status(runtime: PlannerRuntime = Depends(get_runtime)):
    return runtime.engine.status_summary()


@router.get("/events")
def recent_events(
    count: Optional[int] = Query(default=None, ge=1),
    store: PlannerStore = Depends(get_store),
):
    return _EVENTS.dump_python(store.recent_events(count), mode="json")


@router.get("/events/type/{event_type}")
def events_by_type(event_type: EventType, store: PlannerStore = Depends(get_store)):
    return _EVENTS.dump_python(store.events_by_type(event_type), mode="json")


@router.get("/events/entity/{entity_type}/{entity_id}")
def events_by_entity(entity_type: str, entity_id: str, store: PlannerStore = Depends(get_store)):
    return _EVENTS.dump_python(store.events_by_entity(entity_type, entity_id), mode="json")


# ========== Triggers & interventions ==========

@router.get("/triggers")
def list_triggers(store: PlannerStore = Depends(get_store)):
    return _TRIGGERS.dump_python(list(store.state.triggers), mode="json")


@router.put("/triggers/{trigger_id}/enabled")
def set_trigger_enabled(
    trigger_id: str,
    request: TriggerEnabledRequest,
    store: PlannerStore = Depends(get_store),
):
    if store.find_trigger(trigger_id) is None:
        raise HTTPException(status_code=404, detail="Trigger not found")
    store.set_trigger_enabled(trigger_id, request.enabled)
    return {"id": trigger_id, "enabled": request.enabled}


@router.post("/interventions")
def trigger_intervention(request: TriggerRequest, store: PlannerStore = Depends(get_store)):
    if store.find_trigger(request.trigger_id) is None:
        raise HTTPException(status_code=404, detail="Trigger not found")
    fired = store.trigger_intervention(request.trigger_id)
    return {"fired": fired is not None, **_intervention_view(store)}


@router.get("/interventions/current")
def current_intervention(store: PlannerStore = Depends(get_store)):
    return _intervention_view(store)


@router.get("/interventions/history")
def intervention_history(store: PlannerStore = Depends(get_store)):
    return _INTERVENTIONS.dump_python(list(store.state.intervention_history), mode="json")


@router.post("/interventions/current/acknowledge")
def acknowledge_intervention(store: PlannerStore = Depends(get_store)):
    store.acknowledge_intervention()
    return _intervention_view(store)


@router.post("/interventions/current/escalate")
def escalate_intervention(store: PlannerStore = Depends(get_store)):
    store.escalate_intervention()
    return _intervention_view(store)


@router.post("/interventions/current/resolve")
def resolve_intervention(request: ResolveRequest, store: PlannerStore = Depends(get_store)):
    store.resolve_intervention(Resolution(
        action=request.action,
        outcome=request.outcome,
        user_feedback=request.user_feedback,
    ))
    return _intervention_view(store)


@router.post("/interventions/current/dismiss")
def dismiss_intervention(store: PlannerStore = Depends(get_store)):
    store.dismiss_intervention()
    return _intervention_view(store)


# ========== Conversation ==========

@router.get("/conversation")
def get_conversation(store: PlannerStore = Depends(get_store)):
    return _conversation_view(store)


@router.post("/conversation/open")
def open_conversation(request: OpenConversationRequest, store: PlannerStore = Depends(get_store)):
    session_id = store.open_conversation(request.mode)
    return {"session_id": session_id, "mode": request.mode.value}


@router.post("/conversation/close")
def close_conversation(store: PlannerStore = Depends(get_store)):
    store.close_conversation()
    return _conversation_view(store)


@router.post("/conversation/messages")
def add_user_message(request: MessageRequest, store: PlannerStore = Depends(get_store)):
    """Record a user message without asking the assistant."""
    message_id = store.add_message("user", request.content)
    return {"message_id": message_id, "accepted": message_id is not None}


@router.post("/conversation/chat")
async def chat(request: ChatRequest, runtime: PlannerRuntime = Depends(get_runtime)):
    try:
        reply = await runtime.assistant.send_user_message(request.text, request.context)
    except ResponderError as e:
        raise _responder_failure(e)
    return _reply_view(reply, runtime.store)


@router.post("/conversation/initial")
async def initial_response(
    request: InitialResponseRequest,
    runtime: PlannerRuntime = Depends(get_runtime),
):
    try:
        reply = await runtime.assistant.request_initial_response(request.extra_context)
    except ResponderError as e:
        raise _responder_failure(e)
    return _reply_view(reply, runtime.store)


@router.post("/conversation/messages/{message_id}/confirm")
def confirm_action(
    message_id: str,
    request: ConfirmActionRequest,
    store: PlannerStore = Depends(get_store),
):
    if store.state.conversation.find_message(message_id) is None:
        raise HTTPException(status_code=404, detail="Message not found")
    store.confirm_action(message_id, request.action_id, request.params)
    return _conversation_view(store)


# ========== Trackers ==========

@router.post("/postpones/{task_id}")
def record_postpone(task_id: str, store: PlannerStore = Depends(get_store)):
    return {"task_id": task_id, "count": store.record_deadline_postpone(task_id)}


@router.delete("/postpones/{task_id}")
def clear_postpone(task_id: str, store: PlannerStore = Depends(get_store)):
    store.clear_deadline_postpone(task_id)
    return {"task_id": task_id, "count": 0}


@router.get("/moscow")
def list_moscow(store: PlannerStore = Depends(get_store)):
    return state_to_dict(store.state)["moscow_suggestions"]


@router.post("/moscow")
def add_moscow(request: MoSCoWRequest, store: PlannerStore = Depends(get_store)):
    store.add_moscow_suggestion(MoSCoWSuggestion(
        task_id=request.task_id,
        suggested_priority=request.suggested_priority,
        reason=request.reason,
        confidence=request.confidence,
        current_priority=request.current_priority,
    ))
    return state_to_dict(store.state)["moscow_suggestions"][request.task_id]


@router.post("/moscow/{task_id}/confirm")
def confirm_moscow(task_id: str, store: PlannerStore = Depends(get_store)):
    if task_id not in store.state.moscow_suggestions:
        raise HTTPException(status_code=404, detail="Suggestion not found")
    store.confirm_moscow_suggestion(task_id)
    return state_to_dict(store.state)["moscow_suggestions"][task_id]


@router.delete("/moscow/{task_id}")
def dismiss_moscow(task_id: str, store: PlannerStore = Depends(get_store)):
    if task_id not in store.state.moscow_suggestions:
        raise HTTPException(status_code=404, detail="Suggestion not found")
    store.dismiss_moscow_suggestion(task_id)
    return {"task_id": task_id, "dismissed": True}


# ========== Reflections ==========

@router.post("/reflections")
def add_reflection(payload: Dict[str, Any], store: PlannerStore = Depends(get_store)):
    try:
        reflection = _REFLECTION.validate_python(payload)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    store.add_reflection(reflection)
    return {"task_id": reflection.task_id, "count": len(store.state.reflections)}


@router.get("/summaries")
def list_summaries(
    summary_type: Optional[SummaryType] = Query(default=None, alias="type"),
    store: PlannerStore = Depends(get_store),
):
    if summary_type is None:
        summaries = list(store.state.summaries)
    else:
        summaries = store.summaries_by_type(summary_type)
    return _SUMMARIES.dump_python(summaries, mode="json")


@router.post("/summaries")
def add_summary(payload: Dict[str, Any], store: PlannerStore = Depends(get_store)):
    try:
        summary = _SUMMARY.validate_python(payload)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    store.add_summary(summary)
    return {"id": summary.id}


@router.patch("/summaries/{summary_id}")
def update_summary(
    summary_id: str,
    request: SummaryUpdateRequest,
    store: PlannerStore = Depends(get_store),
):
    if store.summary_by_id(summary_id) is None:
        raise HTTPException(status_code=404, detail="Summary not found")
    store.update_summary(summary_id, request.updates)
    return _SUMMARIES.dump_python([store.summary_by_id(summary_id)], mode="json")[0]


# ========== Monitoring ==========

@router.post("/monitoring/start")
def start_monitoring(runtime: PlannerRuntime = Depends(get_runtime)):
    runtime.engine.start()
    return runtime.engine.status_summary()


@router.post("/monitoring/stop")
def stop_monitoring(runtime: PlannerRuntime = Depends(get_runtime)):
    runtime.engine.stop()
    return runtime.engine.status_summary()


@router.post("/monitoring/tick")
def monitoring_tick(payload: Dict[str, Any], runtime: PlannerRuntime = Depends(get_runtime)):
    """Run one health check against the CRUD data posted by the client."""
    try:
        inputs = _INPUTS.validate_python(payload)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    result = runtime.engine.tick(inputs)
    return {
        "status": result.status.value,
        "selected_trigger_id": result.selected_trigger_id,
        "fired": result.intervention is not None,
        **_intervention_view(runtime.store),
    }


# ========== Data management ==========

@router.get("/export")
def export_data(store: PlannerStore = Depends(get_store)):
    return Response(
        content=export_planner_data(store.state),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="planner_export.json"'},
    )


@router.post("/reset")
def reset_planner(store: PlannerStore = Depends(get_store)):
    store.reset()
    logger.info("Planner data reset via API")
    return {"status": "reset", "events": len(store.state.events)}
