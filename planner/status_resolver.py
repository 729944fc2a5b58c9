"""
StatusResolver: effective status of seasons, chapters and quests.

Pure functions, recomputed on every read. Precedence:
1. Explicit terminal statuses (completed / archived) are sticky.
2. Date locking (season start date, unlock times).
3. Ancestor locking (season -> chapter -> quest).
4. Explicit paused, else active.
"""
from datetime import datetime
from typing import Iterable, Optional, Tuple

from planner.dates import end_of_day, is_date_in_future, parse_local_date, parse_timestamp
from planner.models import (
    COMPLETED_DISPLAY_STATUSES,
    TERMINAL_STATUSES,
    Chapter,
    ChapterDisplayStatus,
    EntityStatus,
    Quest,
    Season,
)


def effective_season_status(season: Season, now: Optional[datetime] = None) -> EntityStatus:
    if season.status in TERMINAL_STATUSES:
        return season.status
    if is_date_in_future(season.start_date, now):
        return EntityStatus.LOCKED
    if season.status == EntityStatus.PAUSED:
        return EntityStatus.PAUSED
    return EntityStatus.ACTIVE


def _completed_display(chapter: Chapter) -> ChapterDisplayStatus:
    deadline_day = parse_local_date(chapter.deadline)
    completed_at = parse_timestamp(chapter.completed_at)
    if deadline_day and completed_at and completed_at > end_of_day(deadline_day):
        return ChapterDisplayStatus.OVERDUE_COMPLETED
    return ChapterDisplayStatus.COMPLETED


def chapter_display_status(chapter: Chapter, now: Optional[datetime] = None) -> ChapterDisplayStatus:
    """Base date-status of a chapter, ignoring its season."""
    current = now or datetime.now()

    if chapter.status == EntityStatus.PAUSED:
        return ChapterDisplayStatus.PAUSED

    unlock_day = parse_local_date(chapter.unlock_time)
    if unlock_day and current.date() < unlock_day:
        return ChapterDisplayStatus.LOCKED

    if chapter.status == EntityStatus.COMPLETED or (chapter.progress or 0) >= 100:
        return _completed_display(chapter)

    deadline_day = parse_local_date(chapter.deadline)
    deadline_end = end_of_day(deadline_day) if deadline_day else None

    if deadline_end and current > deadline_end:
        return ChapterDisplayStatus.OVERDUE_UNFINISHED

    return ChapterDisplayStatus.ACTIVE


def effective_chapter_status(
    chapter: Chapter,
    parent_season_locked: bool = False,
    now: Optional[datetime] = None,
) -> ChapterDisplayStatus:
    if chapter.status == EntityStatus.ARCHIVED:
        return ChapterDisplayStatus.ARCHIVED
    # 显式完成不受解锁时间和赛季锁定影响
    if chapter.status == EntityStatus.COMPLETED:
        return _completed_display(chapter)
    base = chapter_display_status(chapter, now)
    if base in COMPLETED_DISPLAY_STATUSES:
        return base
    if parent_season_locked:
        return ChapterDisplayStatus.LOCKED
    return base


def effective_chapter_status_in(
    season: Season,
    chapter: Chapter,
    now: Optional[datetime] = None,
) -> ChapterDisplayStatus:
    season_locked = effective_season_status(season, now) == EntityStatus.LOCKED
    return effective_chapter_status(chapter, parent_season_locked=season_locked, now=now)


def _find_season(seasons: Iterable[Season], season_id: Optional[str]) -> Optional[Season]:
    if not season_id:
        return None
    for season in seasons:
        if season.id == season_id:
            return season
    return None


def _locate_chapter(
    seasons: Iterable[Season],
    own_season: Optional[Season],
    chapter_id: str,
) -> Tuple[Optional[Season], Optional[Chapter]]:
    """
    Find a chapter and the season that actually owns it.

    The quest's own season is tried first; the chapter may live in another
    season, so every season is searched before giving up.
    """
    if own_season is not None:
        chapter = own_season.find_chapter(chapter_id)
        if chapter is not None:
            return own_season, chapter
    for season in seasons:
        chapter = season.find_chapter(chapter_id)
        if chapter is not None:
            return season, chapter
    return None, None


def effective_quest_status(
    quest: Quest,
    seasons: Iterable[Season] = (),
    now: Optional[datetime] = None,
) -> EntityStatus:
    if quest.status in TERMINAL_STATUSES:
        return quest.status

    seasons = list(seasons)
    own_season = _find_season(seasons, quest.season_id)
    if own_season is not None and effective_season_status(own_season, now) == EntityStatus.LOCKED:
        return EntityStatus.LOCKED

    if quest.linked_chapter_id:
        chapter_season, chapter = _locate_chapter(seasons, own_season, quest.linked_chapter_id)
        if chapter is not None and chapter_season is not None:
            if effective_chapter_status_in(chapter_season, chapter, now) == ChapterDisplayStatus.LOCKED:
                return EntityStatus.LOCKED

    if is_date_in_future(quest.unlock_time, now):
        return EntityStatus.LOCKED

    if quest.status == EntityStatus.PAUSED:
        return EntityStatus.PAUSED

    return EntityStatus.ACTIVE
