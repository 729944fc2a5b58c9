from datetime import datetime

from planner.models import Chapter, ChapterDisplayStatus, EntityStatus, Quest, Season
from planner.status_resolver import (
    chapter_display_status,
    effective_chapter_status,
    effective_chapter_status_in,
    effective_quest_status,
    effective_season_status,
)

NOW = datetime(2026, 3, 10, 10, 0)


def _season(season_id: str, start_date: str = "2026-01-01", status=EntityStatus.ACTIVE, chapters=None) -> Season:
    return Season(id=season_id, title=season_id, status=status, start_date=start_date, chapters=chapters or [])


def test_terminal_statuses_are_sticky_regardless_of_dates():
    future_season = _season("s_future", start_date="2027-01-01", status=EntityStatus.COMPLETED)
    assert effective_season_status(future_season, NOW) == EntityStatus.COMPLETED

    locked_season = _season("s_locked", start_date="2027-01-01")
    archived_quest = Quest(id="q1", status=EntityStatus.ARCHIVED, season_id="s_locked", unlock_time="2027-05-01")
    completed_quest = Quest(id="q2", status="completed", season_id="s_locked")
    assert effective_quest_status(archived_quest, [locked_season], NOW) == EntityStatus.ARCHIVED
    assert effective_quest_status(completed_quest, [locked_season], NOW) == EntityStatus.COMPLETED

    chapter = Chapter(id="c1", status=EntityStatus.COMPLETED)
    assert effective_chapter_status(chapter, parent_season_locked=True, now=NOW) == ChapterDisplayStatus.COMPLETED

    archived = Chapter(id="c2", status=EntityStatus.ARCHIVED, unlock_time="2027-01-01")
    assert effective_chapter_status(archived, parent_season_locked=True, now=NOW) == ChapterDisplayStatus.ARCHIVED


def test_season_locks_only_when_start_date_is_after_today():
    assert effective_season_status(_season("s1", start_date="2026-03-11"), NOW) == EntityStatus.LOCKED
    # 同一天晚些时候开始也不算未来
    assert effective_season_status(_season("s2", start_date="2026-03-10"), NOW) == EntityStatus.ACTIVE
    assert effective_season_status(_season("s3", start_date="2025-12-31"), NOW) == EntityStatus.ACTIVE
    assert effective_season_status(_season("s4", status=EntityStatus.PAUSED), NOW) == EntityStatus.PAUSED


def test_malformed_dates_never_lock():
    for raw in ("garbage", "2026-13-45", "", None, "2027/01/01"):
        assert effective_season_status(_season("s", start_date=raw), NOW) == EntityStatus.ACTIVE
        assert effective_quest_status(Quest(id="q", unlock_time=raw), [], NOW) == EntityStatus.ACTIVE


def test_unknown_explicit_status_is_coerced_to_active():
    assert Quest(id="q", status="weird").status == EntityStatus.ACTIVE


def test_chapter_display_status_from_own_dates():
    assert chapter_display_status(Chapter(id="c", unlock_time="2026-03-20"), NOW) == ChapterDisplayStatus.LOCKED
    assert chapter_display_status(Chapter(id="c", deadline="2026-03-09"), NOW) == ChapterDisplayStatus.OVERDUE_UNFINISHED
    # 截止日当天仍未逾期
    assert chapter_display_status(Chapter(id="c", deadline="2026-03-10"), NOW) == ChapterDisplayStatus.ACTIVE
    assert chapter_display_status(Chapter(id="c", progress=100), NOW) == ChapterDisplayStatus.COMPLETED
    late = Chapter(
        id="c",
        status=EntityStatus.COMPLETED,
        deadline="2026-03-01",
        completed_at="2026-03-05T12:00:00",
    )
    assert chapter_display_status(late, NOW) == ChapterDisplayStatus.OVERDUE_COMPLETED
    assert chapter_display_status(Chapter(id="c", status=EntityStatus.PAUSED), NOW) == ChapterDisplayStatus.PAUSED


def test_locked_season_overrides_chapter_unless_completed():
    open_chapter = Chapter(id="c_open")
    late_done = Chapter(id="c_done", status=EntityStatus.COMPLETED, deadline="2026-03-01", completed_at="2026-03-02T09:00:00")
    season = _season("s_future", start_date="2026-06-01", chapters=[open_chapter, late_done])

    assert effective_chapter_status_in(season, open_chapter, NOW) == ChapterDisplayStatus.LOCKED
    assert effective_chapter_status_in(season, late_done, NOW) == ChapterDisplayStatus.OVERDUE_COMPLETED


def test_quest_in_locked_season_is_locked_even_after_own_unlock():
    season = _season("s_future", start_date="2026-04-01")
    quest = Quest(id="q", season_id="s_future", unlock_time="2026-01-01")
    assert effective_quest_status(quest, [season], NOW) == EntityStatus.LOCKED


def test_quest_linked_to_locked_chapter_is_locked():
    chapter = Chapter(id="c_later", unlock_time="2026-04-01")
    season = _season("s_active", chapters=[chapter])
    quest = Quest(id="q", season_id="s_active", linked_chapter_id="c_later", unlock_time="2026-01-01")
    assert effective_quest_status(quest, [season], NOW) == EntityStatus.LOCKED


def test_chapter_in_other_season_is_resolved_against_its_own_season():
    chapter = Chapter(id="c_elsewhere")
    own = _season("s_active")
    other = _season("s_future", start_date="2026-09-01", chapters=[chapter])
    quest = Quest(id="q", season_id="s_active", linked_chapter_id="c_elsewhere")

    assert effective_quest_status(quest, [own, other], NOW) == EntityStatus.LOCKED


def test_quest_with_unknown_chapter_or_season_falls_through():
    quest = Quest(id="q", season_id="missing", linked_chapter_id="missing")
    assert effective_quest_status(quest, [_season("s1")], NOW) == EntityStatus.ACTIVE


def test_quest_own_unlock_and_pause():
    assert effective_quest_status(Quest(id="q", unlock_time="2026-03-11"), [], NOW) == EntityStatus.LOCKED
    assert effective_quest_status(Quest(id="q", status=EntityStatus.PAUSED), [], NOW) == EntityStatus.PAUSED
    assert effective_quest_status(Quest(id="q"), [], NOW) == EntityStatus.ACTIVE


def test_completed_chapter_ignores_future_unlock():
    done_early = Chapter(id="c_done", status=EntityStatus.COMPLETED, unlock_time="2026-05-01")
    assert effective_chapter_status(done_early, parent_season_locked=False, now=NOW) == ChapterDisplayStatus.COMPLETED

    late = Chapter(
        id="c_late",
        status=EntityStatus.COMPLETED,
        unlock_time="2026-05-01",
        deadline="2026-03-01",
        completed_at="2026-03-02T09:00:00",
    )
    assert effective_chapter_status(late, now=NOW) == ChapterDisplayStatus.OVERDUE_COMPLETED

    # a quest linked to it is not locked through the chapter
    season = _season("s_active", chapters=[done_early])
    quest = Quest(id="q", season_id="s_active", linked_chapter_id="c_done")
    assert effective_quest_status(quest, [season], NOW) == EntityStatus.ACTIVE
