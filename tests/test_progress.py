"""Tests for progress calculations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from daybook.models import FocusSession, Habit, HabitCompletion, TodoItem
from daybook.progress import (
    daily_focus_minutes,
    habit_progress,
    percent_complete,
    round_half_up,
    todo_progress,
)

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _todo(done: bool) -> TodoItem:
    return TodoItem(text="x", done=done, created_at=T0, updated_at=T0)


def _habit(habit_id: str, enabled: bool = True) -> Habit:
    return Habit(id=habit_id, label=habit_id, enabled=enabled, created_at=T0, updated_at=T0)


def _check(habit_id: str, completed: bool = True) -> HabitCompletion:
    return HabitCompletion(
        habit_id=habit_id, date="2024-03-01", completed=completed, created_at=T0, updated_at=T0
    )


def _session(start: datetime, seconds: int, completed: bool = True) -> FocusSession:
    return FocusSession(
        start_time=start,
        end_time=start + timedelta(seconds=seconds) if completed else None,
        duration=seconds,
        completed=completed,
        created_at=start,
        updated_at=start,
    )


class TestPercentComplete:
    def test_empty_is_zero(self) -> None:
        assert percent_complete([], lambda item: True) == 0

    def test_half(self) -> None:
        items = [{"done": True}, {"done": False}]
        assert percent_complete(items, lambda item: item["done"]) == 50

    def test_rounds_half_up(self) -> None:
        # 1/8 = 12.5% -> 13, where round() would give 12
        items = [True] + [False] * 7
        assert percent_complete(items, bool) == 13

    def test_thirds(self) -> None:
        assert percent_complete([True, False, False], bool) == 33
        assert percent_complete([True, True, False], bool) == 67

    def test_round_half_up(self) -> None:
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestTodoProgress:
    def test_all_done(self) -> None:
        assert todo_progress([_todo(True)]) == 100

    def test_none_done(self) -> None:
        assert todo_progress([_todo(False), _todo(False)]) == 0


class TestHabitProgress:
    def test_disabled_habits_ignored(self) -> None:
        habits = [_habit("a"), _habit("b"), _habit("c", enabled=False)]
        assert habit_progress(habits, [_check("a"), _check("c")]) == 50

    def test_unchecked_completion_does_not_count(self) -> None:
        assert habit_progress([_habit("a")], [_check("a", completed=False)]) == 0

    def test_no_habits(self) -> None:
        assert habit_progress([], [_check("a")]) == 0


class TestDailyFocusMinutes:
    def test_groups_by_day(self) -> None:
        sessions = [
            _session(T0, 1500),
            _session(T0 + timedelta(hours=2), 900),
            _session(T0 + timedelta(days=1), 1500),
            _session(T0 + timedelta(days=1, hours=1), 1500, completed=False),
        ]
        assert daily_focus_minutes(sessions, tz=timezone.utc) == {
            "2024-03-01": 40,
            "2024-03-02": 25,
        }

    def test_empty(self) -> None:
        assert daily_focus_minutes([], tz=timezone.utc) == {}
