"""
Hierarchy data models for the Proactive Planner.

Seasons, chapters, quests and tasks are owned by the CRUD store; the planner
core only reads them. Statuses arriving as plain strings are coerced to enums.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class EntityStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    LOCKED = "locked"      # 派生状态，仅由 StatusResolver 产出


TERMINAL_STATUSES = frozenset({EntityStatus.COMPLETED, EntityStatus.ARCHIVED})


class ChapterDisplayStatus(str, Enum):
    LOCKED = "locked"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    OVERDUE_UNFINISHED = "overdue_unfinished"
    OVERDUE_COMPLETED = "overdue_completed"


COMPLETED_DISPLAY_STATUSES = frozenset({
    ChapterDisplayStatus.COMPLETED,
    ChapterDisplayStatus.OVERDUE_COMPLETED,
})


class TaskType(str, Enum):
    CREATIVE = "creative"        # 创造
    TAX = "tax"                  # 税收
    MAINTENANCE = "maintenance"  # 维护


def _coerce_status(value) -> EntityStatus:
    if isinstance(value, EntityStatus):
        return value
    try:
        return EntityStatus(value)
    except ValueError:
        return EntityStatus.ACTIVE


@dataclass
class Chapter:
    """章节（属于某个赛季）"""
    id: str
    title: str = ""
    status: EntityStatus = EntityStatus.ACTIVE
    order: int = 0
    progress: float = 0
    unlock_time: Optional[str] = None    # YYYY-MM-DD
    deadline: Optional[str] = None       # YYYY-MM-DD
    completed_at: Optional[str] = None   # ISO timestamp

    def __post_init__(self):
        self.status = _coerce_status(self.status)


@dataclass
class Season:
    """赛季"""
    id: str
    title: str = ""
    status: EntityStatus = EntityStatus.ACTIVE
    start_date: Optional[str] = None
    chapters: List[Chapter] = field(default_factory=list)

    def __post_init__(self):
        self.status = _coerce_status(self.status)

    def find_chapter(self, chapter_id: str) -> Optional[Chapter]:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None


@dataclass
class Quest:
    """副本"""
    id: str
    title: str = ""
    status: EntityStatus = EntityStatus.ACTIVE
    progress: float = 0
    unlock_time: Optional[str] = None
    deadline: Optional[str] = None
    linked_chapter_id: Optional[str] = None
    season_id: Optional[str] = None

    def __post_init__(self):
        self.status = _coerce_status(self.status)


@dataclass
class Task:
    """每日任务"""
    id: str
    name: str = ""
    completed: bool = False
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    deadline: Optional[str] = None
    task_type: str = TaskType.CREATIVE.value
    linked_quest_id: Optional[str] = None


@dataclass
class ArchivedTask:
    id: str
    archived_at: Optional[str] = None


@dataclass
class PlannerInputs:
    """Read-only bundle of CRUD data handed to a monitoring tick."""
    tasks: List[Task] = field(default_factory=list)
    quests: List[Quest] = field(default_factory=list)
    seasons: List[Season] = field(default_factory=list)
    archived_tasks: List[ArchivedTask] = field(default_factory=list)

    def find_season(self, season_id: Optional[str]) -> Optional[Season]:
        if not season_id:
            return None
        for season in self.seasons:
            if season.id == season_id:
                return season
        return None

    def find_quest(self, quest_id: Optional[str]) -> Optional[Quest]:
        if not quest_id:
            return None
        for quest in self.quests:
            if quest.id == quest_id:
                return quest
        return None
