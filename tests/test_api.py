import json

import pytest
from fastapi.testclient import TestClient

from planner.conversation import ConversationMode
from planner.exceptions import ResponderAuthError, ResponderConnectionError
from planner.responders import ResponderReply
from web.backend.app import create_app
from web.backend.routers.planner import PlannerRuntime, get_runtime

API = "/api/v1/planner"


class StubResponder:
    def __init__(self, persona, error=None):
        self.persona = persona
        self.error = error

    async def get_initial_response(self, trigger_type, snapshot, extra_context=None):
        return await self.respond_to_user(trigger_type, [])

    async def respond_to_user(self, user_text, history, context=None):
        if self.error is not None:
            raise self.error
        return ResponderReply(message=f"{self.persona.value}: got {user_text}")


def _client(store, error=None):
    responders = {mode: StubResponder(mode, error) for mode in ConversationMode}
    runtime = PlannerRuntime.build(store, responders=responders)
    app = create_app()
    app.dependency_overrides[get_runtime] = lambda: runtime
    return TestClient(app)


@pytest.fixture
def client(store):
    return _client(store)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_intervention_lifecycle(client):
    assert client.post(f"{API}/interventions", json={"trigger_id": "nope"}).status_code == 404

    fired = client.post(f"{API}/interventions", json={"trigger_id": "idle_too_long"}).json()
    assert fired["fired"] is True
    assert fired["current_intervention"]["trigger_id"] == "idle_too_long"

    # an intervention is already active: the second one is dropped
    again = client.post(f"{API}/interventions", json={"trigger_id": "quest_overdue"}).json()
    assert again["fired"] is False
    assert again["current_intervention"]["trigger_id"] == "idle_too_long"

    acked = client.post(f"{API}/interventions/current/acknowledge").json()
    assert acked["current_intervention"]["status"] == "acknowledged"

    escalated = client.post(f"{API}/interventions/current/escalate").json()
    assert escalated["current_intervention"]["status"] == "in_progress"
    assert escalated["current_intervention"]["current_level"] == "coach"
    assert client.get(f"{API}/conversation").json()["mode"] == "coach"

    resolved = client.post(f"{API}/interventions/current/resolve", json={"user_feedback": "done"}).json()
    assert resolved["current_intervention"] is None

    history = client.get(f"{API}/interventions/history").json()
    assert history[0]["resolution"] == {"action": "user_resolved", "outcome": "success", "user_feedback": "done"}


def test_trigger_toggle(client):
    assert client.put(f"{API}/triggers/ghost/enabled", json={"enabled": False}).status_code == 404

    assert client.put(f"{API}/triggers/idle_too_long/enabled", json={"enabled": False}).status_code == 200
    triggers = {t["id"]: t for t in client.get(f"{API}/triggers").json()}
    assert triggers["idle_too_long"]["enabled"] is False


def test_conversation_messages(client):
    session = client.post(f"{API}/conversation/open", json={"mode": "friend"}).json()
    assert session["session_id"]

    added = client.post(f"{API}/conversation/messages", json={"content": "hi"}).json()
    assert added["accepted"] is True
    assert client.post(f"{API}/conversation/messages", json={"content": ""}).status_code == 422

    missing = client.post(f"{API}/conversation/messages/msg_missing/confirm", json={"action_id": "a1"})
    assert missing.status_code == 404

    client.post(f"{API}/conversation/close")
    closed = client.post(f"{API}/conversation/messages", json={"content": "anyone?"}).json()
    assert closed == {"message_id": None, "accepted": False}


def test_chat_round_trip(client):
    client.post(f"{API}/conversation/open", json={"mode": "friend"})

    body = client.post(f"{API}/conversation/chat", json={"text": "stuck"}).json()

    assert body["reply"]["message"] == "friend: got stuck"
    assert [m["role"] for m in body["conversation"]["messages"]] == ["user", "friend"]


@pytest.mark.parametrize(
    "error, status",
    [(ResponderConnectionError(persona="friend"), 502), (ResponderAuthError(persona="friend"), 503)],
)
def test_responder_failures_map_to_gateway_errors(store, error, status):
    client = _client(store, error=error)
    client.post(f"{API}/conversation/open", json={"mode": "friend"})

    response = client.post(f"{API}/conversation/chat", json={"text": "hello"})

    assert response.status_code == status
    assert store.state.conversation.is_open


def test_postpones_and_moscow(client, store):
    client.post(f"{API}/postpones/t1")
    assert client.post(f"{API}/postpones/t1").json()["count"] == 2
    client.delete(f"{API}/postpones/t1")
    assert store.state.deadline_postpone_map == {}

    assert client.post(f"{API}/moscow/t9/confirm").status_code == 404
    assert client.delete(f"{API}/moscow/t9").status_code == 404

    client.post(f"{API}/moscow", json={"task_id": "t9", "suggested_priority": "must", "confidence": 0.8})
    confirmed = client.post(f"{API}/moscow/t9/confirm").json()
    assert confirmed["confirmed_by_user"] is True
    assert client.delete(f"{API}/moscow/t9").json() == {"task_id": "t9", "dismissed": True}
    assert client.get(f"{API}/moscow").json() == {}


def test_invalid_reflection_is_rejected(client):
    payload = {"task_id": "t1", "task_name": "Draft", "completed_at": "2026-03-10T09:00:00", "satisfaction_score": 9}
    assert client.post(f"{API}/reflections", json=payload).status_code == 422

    payload["satisfaction_score"] = 4
    assert client.post(f"{API}/reflections", json=payload).json() == {"task_id": "t1", "count": 1}


def test_monitoring_tick(client):
    tasks = [{"id": f"t{i}", "deadline": "2026-03-01"} for i in range(3)]

    body = client.post(f"{API}/monitoring/tick", json={"tasks": tasks}).json()

    assert body["status"] == "yellow"
    assert body["selected_trigger_id"] == "progress_severely_behind"
    assert body["fired"] is True
    assert client.get(f"{API}/status").json()["current_intervention"] == "progress_severely_behind"


def test_export_and_reset(client):
    client.post(f"{API}/interventions", json={"trigger_id": "idle_too_long"})

    export = client.get(f"{API}/export")
    assert "planner_export.json" in export.headers["content-disposition"]
    assert json.loads(export.text)["current_intervention"]["trigger_id"] == "idle_too_long"

    assert client.post(f"{API}/reset").json() == {"status": "reset", "events": 0}
    assert client.get(f"{API}/interventions/current").json() == {"current_intervention": None}
