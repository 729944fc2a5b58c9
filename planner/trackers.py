"""
Per-task auxiliary trackers.

- deadline postpone counter: a key exists only once a task has been postponed;
  clearing deletes the key rather than resetting it to zero.
- MoSCoW suggestions: transient AI priority hints, upserted by task id.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple


class MoSCoWPriority(str, Enum):
    MUST = "must"
    SHOULD = "should"
    COULD = "could"
    WONT = "wont"


@dataclass(frozen=True)
class MoSCoWSuggestion:
    task_id: str
    suggested_priority: MoSCoWPriority
    reason: str = ""
    confidence: float = 0.5      # 0-1
    current_priority: Optional[MoSCoWPriority] = None
    confirmed_by_user: bool = False
    suggested_at: Optional[str] = None


def record_postpone(postpones: Mapping[str, int], task_id: str) -> Tuple[Dict[str, int], int]:
    """Return the updated map and the new count (1 on the first postpone)."""
    count = postpones.get(task_id, 0) + 1
    updated = dict(postpones)
    updated[task_id] = count
    return updated, count


def clear_postpone(postpones: Mapping[str, int], task_id: str) -> Dict[str, int]:
    return {k: v for k, v in postpones.items() if k != task_id}


def upsert_suggestion(
    suggestions: Mapping[str, MoSCoWSuggestion],
    suggestion: MoSCoWSuggestion,
    suggested_at: str,
) -> Dict[str, MoSCoWSuggestion]:
    updated = dict(suggestions)
    updated[suggestion.task_id] = replace(suggestion, suggested_at=suggested_at)
    return updated


def confirm_suggestion(
    suggestions: Mapping[str, MoSCoWSuggestion],
    task_id: str,
) -> Dict[str, MoSCoWSuggestion]:
    if task_id not in suggestions:
        return dict(suggestions)
    updated = dict(suggestions)
    updated[task_id] = replace(suggestions[task_id], confirmed_by_user=True)
    return updated


def dismiss_suggestion(
    suggestions: Mapping[str, MoSCoWSuggestion],
    task_id: str,
) -> Dict[str, MoSCoWSuggestion]:
    return {k: v for k, v in suggestions.items() if k != task_id}
