"""
Two-persona conversation (friend / coach).

Messages are a tagged union on `role`: only friend and coach messages may carry
suggested or confirmed actions. A session is replaced wholesale on open and
reset to the closed default on close; every opened session gets a fresh id so
late AI replies can be matched against the session they were requested for.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Union
from uuid import uuid4

from planner.health import HealthSnapshot
from planner.triggers import TriggerType


class ConversationMode(str, Enum):
    FRIEND = "friend"
    COACH = "coach"


class ActionType(str, Enum):
    TASK_BREAKDOWN = "task_breakdown"
    PRIORITY_CHANGE = "priority_change"
    DEADLINE_EXTEND = "deadline_extend"
    QUEST_PRUNE = "quest_prune"
    MOSCOW_UPDATE = "moscow_update"
    ENCOURAGE = "encourage"
    REFLECT = "reflect"


class PreferredStyle(str, Enum):
    DIRECT = "direct"
    GENTLE = "gentle"
    ANALYTICAL = "analytical"


@dataclass(frozen=True)
class SuggestedAction:
    """AI 建议的可执行动作"""
    id: str
    type: ActionType
    label: str
    description: str = ""
    params: Dict[str, Any] = field(default_factory=dict)
    requires_confirmation: bool = True


@dataclass(frozen=True)
class ConfirmedAction:
    action_id: str
    params: Dict[str, Any] = field(default_factory=dict)


# ==================== Messages ====================

@dataclass(frozen=True)
class UserMessage:
    id: str
    content: str
    timestamp: str
    role: Literal["user"] = "user"


@dataclass(frozen=True)
class SystemMessage:
    id: str
    content: str
    timestamp: str
    role: Literal["system"] = "system"


@dataclass(frozen=True)
class _AssistantMessage:
    id: str
    content: str
    timestamp: str
    suggested_actions: Tuple[SuggestedAction, ...] = ()
    confirmed_action: Optional[ConfirmedAction] = None


@dataclass(frozen=True)
class FriendMessage(_AssistantMessage):
    role: Literal["friend"] = "friend"


@dataclass(frozen=True)
class CoachMessage(_AssistantMessage):
    role: Literal["coach"] = "coach"


Message = Union[UserMessage, FriendMessage, CoachMessage, SystemMessage]
AssistantMessage = Union[FriendMessage, CoachMessage]

_MESSAGE_CLASSES = {
    "user": UserMessage,
    "friend": FriendMessage,
    "coach": CoachMessage,
    "system": SystemMessage,
}

ASSISTANT_ROLES = frozenset({"friend", "coach"})


def new_message_id() -> str:
    return f"msg_{uuid4().hex[:8]}"


def new_session_id() -> str:
    return f"conv_{uuid4().hex[:12]}"


def build_message(
    role: str,
    content: str,
    now: datetime,
    suggested_actions: Sequence[SuggestedAction] = (),
) -> Message:
    """
    Build a message for `role` with a generated id and timestamp.

    Suggested actions are dropped for user and system messages.
    """
    role = getattr(role, "value", role)
    cls = _MESSAGE_CLASSES.get(role)
    if cls is None:
        raise ValueError(f"Unknown message role: {role!r}")

    base = dict(id=new_message_id(), content=content, timestamp=now.isoformat())
    if role in ASSISTANT_ROLES:
        return cls(**base, suggested_actions=tuple(suggested_actions))
    return cls(**base)


def is_assistant_message(message: Message) -> bool:
    return message.role in ASSISTANT_ROLES


# ==================== Context & Session ====================

@dataclass(frozen=True)
class UserProfile:
    recent_patterns: Tuple[str, ...] = ()
    preferred_style: PreferredStyle = PreferredStyle.GENTLE
    known_blockers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TriggerContext:
    type: TriggerType
    metrics: Optional[HealthSnapshot] = None


@dataclass(frozen=True)
class ConversationContext:
    trigger: Optional[TriggerContext] = None
    related_task_ids: Tuple[str, ...] = ()
    related_quest_ids: Tuple[str, ...] = ()
    user_profile: UserProfile = field(default_factory=UserProfile)


@dataclass(frozen=True)
class ConversationSession:
    is_open: bool = False
    mode: ConversationMode = ConversationMode.FRIEND
    messages: Tuple[Message, ...] = ()
    context: Optional[ConversationContext] = None
    session_id: Optional[str] = None

    @classmethod
    def opened(cls, mode: ConversationMode, context: Optional[ConversationContext] = None) -> "ConversationSession":
        return cls(
            is_open=True,
            mode=ConversationMode(mode),
            messages=(),
            context=context,
            session_id=new_session_id(),
        )

    def accepts(self, session_id: Optional[str]) -> bool:
        """True if a reply requested for `session_id` still belongs here."""
        return self.is_open and session_id is not None and session_id == self.session_id

    def find_message(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def with_message(self, message: Message) -> "ConversationSession":
        return replace(self, messages=self.messages + (message,))

    def with_confirmed(self, message_id: str, action: ConfirmedAction) -> "ConversationSession":
        messages: List[Message] = []
        for message in self.messages:
            if message.id == message_id and is_assistant_message(message):
                message = replace(message, confirmed_action=action)
            messages.append(message)
        return replace(self, messages=tuple(messages))
