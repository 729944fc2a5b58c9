"""
AI responder contract (friend / coach).

The planner core never talks to a model directly: it calls a Responder and
receives a ResponderReply. HttpResponder is the default implementation, an
OpenAI-compatible chat client over httpx. Failures surface as ResponderError
subclasses; nothing here retries.
"""
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
import yaml
from pydantic import BaseModel, Field, ValidationError

from planner.conversation import ActionType, ConversationMode, Message, SuggestedAction
from planner.exceptions import (
    ConfigError,
    ResponderAuthError,
    ResponderConnectionError,
    ResponderError,
    ResponderRateLimitError,
    ResponderTimeoutError,
)
from planner.health import HealthSnapshot
from planner.logger import get_logger
from planner.paths import CONFIG_DIR

logger = get_logger("responders")

MODEL_CONFIG_PATH = CONFIG_DIR / "model.yaml"
LOCAL_MODEL_CONFIG_PATH = CONFIG_DIR / "local_model.yaml"

DEFAULT_TIMEOUT_SECONDS = 60.0


class ReplyAction(BaseModel):
    id: str
    type: ActionType
    label: str
    description: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    requires_confirmation: bool = True

    def to_suggested_action(self) -> SuggestedAction:
        return SuggestedAction(
            id=self.id,
            type=self.type,
            label=self.label,
            description=self.description,
            params=dict(self.params),
            requires_confirmation=self.requires_confirmation,
        )


class ResponderReply(BaseModel):
    """Shape every responder must return."""
    message: str
    suggested_actions: List[ReplyAction] = Field(default_factory=list)
    should_escalate: bool = False
    should_close: bool = False
    escalate_reason: Optional[str] = None

    def actions(self) -> List[SuggestedAction]:
        return [a.to_suggested_action() for a in self.suggested_actions]


class Responder(Protocol):
    """Async friend / coach persona."""

    persona: ConversationMode

    async def get_initial_response(
        self,
        trigger_type: str,
        snapshot: HealthSnapshot,
        extra_context: Optional[Dict[str, Any]] = None,
    ) -> ResponderReply:
        ...

    async def respond_to_user(
        self,
        user_text: str,
        history: Sequence[Message],
        context: Optional[Dict[str, Any]] = None,
    ) -> ResponderReply:
        ...


# ==================== 配置 ====================

def _expand_env_vars(config: Dict[str, Any]) -> Dict[str, Any]:
    """Expand `${VAR}` placeholders; unset variables become None."""
    result: Dict[str, Any] = {}
    pattern = re.compile(r"^\$\{([^}]+)\}$")
    for key, value in config.items():
        if isinstance(value, str):
            match = pattern.match(value)
            result[key] = os.environ.get(match.group(1)) if match else value
        elif isinstance(value, dict):
            result[key] = _expand_env_vars(value)
        else:
            result[key] = value
    return result


def load_model_config(persona: Optional[str] = None, path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load responder settings.

    Priority: explicit path > local_model.yaml > model.yaml. A `personas`
    section may override keys per persona (friend / coach).
    """
    candidates = [path] if path else [LOCAL_MODEL_CONFIG_PATH, MODEL_CONFIG_PATH]
    raw: Dict[str, Any] = {}
    for candidate in candidates:
        if candidate and candidate.exists():
            try:
                with open(candidate, "r", encoding="utf-8") as f:
                    raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Model config is not valid YAML: {e}", config_path=str(candidate)) from e
            break

    personas = raw.pop("personas", None) or {}
    config = dict(raw)
    if persona and persona in personas:
        config.update(personas[persona] or {})
    return _expand_env_vars(config)


def parse_llm_json(content: str) -> Optional[Dict[str, Any]]:
    """
    解析 LLM 返回的 JSON 内容。

    LLM 经常将 JSON 包裹在 Markdown 代码块中，此函数自动处理这些情况。
    解析失败或结果不是对象时返回 None。
    """
    if not content:
        return None

    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]

    try:
        parsed = json.loads(content.strip())
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


# ==================== HTTP 实现 ====================

_PERSONA_PROMPTS = {
    ConversationMode.FRIEND: (
        "You are the user's supportive friend inside a productivity game. "
        "Be warm and brief. Offer at most three small, concrete options."
    ),
    ConversationMode.COACH: (
        "You are the user's direct productivity coach inside a productivity game. "
        "Diagnose the problem and push for a concrete decision."
    ),
}

_REPLY_FORMAT = (
    "Reply with a JSON object only: "
    '{"message": str, "suggested_actions": [{"id": str, "type": one of '
    + ", ".join(t.value for t in ActionType)
    + ', "label": str, "description": str, "requires_confirmation": bool}], '
    '"should_escalate": bool, "should_close": bool, "escalate_reason": str|null}'
)

_HISTORY_ROLES = {"user": "user", "friend": "assistant", "coach": "assistant", "system": "system"}


def _snapshot_brief(snapshot: HealthSnapshot) -> Dict[str, Any]:
    return {
        "overall_status": snapshot.overall_status.value,
        "status_reasons": list(snapshot.status_reasons),
        "time_since_last_completion": snapshot.time_since_last_completion,
        "today_completion_rate": round(snapshot.today_completion_rate, 1),
        "overdue_tasks_count": snapshot.overdue_tasks_count,
        "overdue_quests_count": snapshot.overdue_quests_count,
        "at_risk_quests": [q.quest_title for q in snapshot.at_risk_quests],
        "energy_pattern": snapshot.energy_pattern.value,
    }


class HttpResponder:
    """
    OpenAI-compatible chat completions client for one persona.

    Args:
        persona: friend or coach
        config: settings (base_url, model_name, api_key, timeout); loaded from
            config/model.yaml when omitted
        transport: optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        persona: ConversationMode,
        config: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.persona = ConversationMode(persona)
        settings = config if config is not None else load_model_config(self.persona.value)
        self.base_url = str(settings.get("base_url", "https://api.openai.com/v1")).rstrip("/")
        self.model_name = settings.get("model_name", "gpt-4o-mini")
        self.api_key = settings.get("api_key") or os.environ.get("OPENAI_API_KEY")
        self.timeout = float(settings.get("timeout", DEFAULT_TIMEOUT_SECONDS))
        self.temperature = float(settings.get("temperature", 0.7))
        self._transport = transport

    async def get_initial_response(
        self,
        trigger_type: str,
        snapshot: HealthSnapshot,
        extra_context: Optional[Dict[str, Any]] = None,
    ) -> ResponderReply:
        prompt = json.dumps({
            "trigger": getattr(trigger_type, "value", trigger_type),
            "health": _snapshot_brief(snapshot),
            "context": extra_context or {},
        }, ensure_ascii=False)
        return await self._complete([{"role": "user", "content": prompt}])

    async def respond_to_user(
        self,
        user_text: str,
        history: Sequence[Message],
        context: Optional[Dict[str, Any]] = None,
    ) -> ResponderReply:
        messages = [
            {"role": _HISTORY_ROLES.get(m.role, "user"), "content": m.content}
            for m in history
        ]
        if context:
            messages.append({"role": "system", "content": json.dumps(context, ensure_ascii=False, default=str)})
        messages.append({"role": "user", "content": user_text})
        return await self._complete(messages)

    async def _complete(self, messages: List[Dict[str, str]]) -> ResponderReply:
        if not self.api_key:
            raise ResponderAuthError(persona=self.persona.value, model_name=self.model_name, endpoint=self.base_url)

        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": f"{_PERSONA_PROMPTS[self.persona]}\n{_REPLY_FORMAT}"},
                *messages,
            ],
            "temperature": self.temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        context = dict(persona=self.persona.value, model_name=self.model_name, endpoint=self.base_url)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/chat/completions", headers=headers, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise ResponderAuthError(**context) from e
            if status == 429:
                retry_after = e.response.headers.get("retry-after")
                raise ResponderRateLimitError(
                    **context,
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                ) from e
            raise ResponderError(f"HTTP {status}: {e.response.text[:200]}", **context) from e
        except httpx.TimeoutException as e:
            raise ResponderTimeoutError(**context, timeout_seconds=self.timeout) from e
        except httpx.TransportError as e:
            raise ResponderConnectionError(**context) from e
        except ValueError as e:
            raise ResponderError(f"Response is not JSON: {e}", **context) from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ResponderError("Unexpected completion payload", **context) from e

        return self._to_reply(content)

    def _to_reply(self, content: str) -> ResponderReply:
        parsed = parse_llm_json(content)
        if parsed is None:
            return ResponderReply(message=content.strip())
        try:
            return ResponderReply.model_validate(parsed)
        except ValidationError as e:
            logger.warning(f"{self.persona.value} reply did not match the schema ({e.error_count()} error(s))")
            message = parsed.get("message")
            return ResponderReply(message=message if isinstance(message, str) else content.strip())


def create_responders(config: Optional[Dict[str, Dict[str, Any]]] = None) -> Dict[ConversationMode, HttpResponder]:
    """Build the friend and coach responders from config/model.yaml."""
    config = config or {}
    return {
        mode: HttpResponder(mode, config.get(mode.value))
        for mode in ConversationMode
    }
