"""Tests for Pydantic models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from daybook.models import (
    FOCUS_SESSION_SECONDS,
    AppConfig,
    FocusSession,
    Habit,
    HabitCompletion,
    HabitCreate,
    HabitPatch,
    StoreBackend,
    TimerState,
    TodoCreate,
    TodoItem,
    TodoPatch,
    new_id,
    patch_changes,
)

T0 = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)


class TestNewId:
    def test_unique_under_rapid_calls(self) -> None:
        ids = [new_id() for _ in range(1000)]
        assert len(set(ids)) == 1000


class TestEntity:
    def test_aliases_round_trip(self) -> None:
        todo = TodoItem(text="Write", created_at=T0, updated_at=T0)
        data = todo.model_dump(mode="json", by_alias=True)
        assert "createdAt" in data
        assert "updatedAt" in data
        assert TodoItem.model_validate(data) == todo

    def test_updated_at_defaults_to_created_at(self) -> None:
        todo = TodoItem.model_validate({"id": "a1", "text": "x", "createdAt": T0.isoformat()})
        assert todo.updated_at == todo.created_at

    def test_updated_at_never_before_created_at(self) -> None:
        todo = TodoItem(
            text="x", created_at=T0, updated_at=datetime(2020, 1, 1, tzinfo=timezone.utc)
        )
        assert todo.updated_at == T0

    def test_naive_timestamps_become_utc(self) -> None:
        todo = TodoItem.model_validate(
            {"id": "a1", "text": "x", "createdAt": "2024-03-01T08:30:00"}
        )
        assert todo.created_at == T0
        assert todo.created_at.tzinfo is not None

    def test_missing_created_at_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TodoItem.model_validate({"id": "a1", "text": "x"})


class TestTodoItem:
    def test_defaults(self) -> None:
        todo = TodoItem(text="x", created_at=T0, updated_at=T0)
        assert todo.done is False
        assert todo.done_at is None
        assert todo.id


class TestHabit:
    def test_enabled_by_default(self) -> None:
        habit = Habit.model_validate({"id": "h1", "label": "Read", "createdAt": T0.isoformat()})
        assert habit.enabled is True


class TestHabitCompletion:
    def test_valid_date(self) -> None:
        c = HabitCompletion(habit_id="h1", date="2024-03-01", created_at=T0, updated_at=T0)
        assert c.completed is False
        assert c.habit_label == ""

    @pytest.mark.parametrize(
        "bad", ["2024-3-1", "yesterday", "20240301", "2024-02-30", "2024-W01-1", "2024-001"]
    )
    def test_bad_date_rejected(self, bad: str) -> None:
        with pytest.raises(ValidationError):
            HabitCompletion(habit_id="h1", date=bad, created_at=T0, updated_at=T0)


class TestFocusSession:
    def test_defaults(self) -> None:
        s = FocusSession(start_time=T0, created_at=T0, updated_at=T0)
        assert s.duration == FOCUS_SESSION_SECONDS == 1500
        assert s.completed is False
        assert s.end_time is None

    def test_start_time_defaults_to_created_at(self) -> None:
        s = FocusSession.model_validate({"id": "s1", "createdAt": T0.isoformat()})
        assert s.start_time == T0

    def test_end_time_requires_completed(self) -> None:
        with pytest.raises(ValidationError):
            FocusSession(start_time=T0, end_time=T0, created_at=T0, updated_at=T0)

    def test_negative_duration_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FocusSession(start_time=T0, duration=-1, created_at=T0, updated_at=T0)


class TestInputs:
    def test_todo_text_trimmed(self) -> None:
        assert TodoCreate(text="  Plan day  ").text == "Plan day"

    @pytest.mark.parametrize("blank", ["", "   ", "\t\n"])
    def test_blank_todo_rejected(self, blank: str) -> None:
        with pytest.raises(ValidationError):
            TodoCreate(text=blank)

    def test_blank_habit_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HabitCreate(label="  ")

    def test_patch_blank_text_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TodoPatch(text=" ")


class TestPatchChanges:
    def test_only_set_fields(self) -> None:
        assert patch_changes(TodoPatch(done=True)) == {"done": True}

    def test_false_is_kept(self) -> None:
        assert patch_changes(HabitPatch(enabled=False)) == {"enabled": False}

    def test_explicit_none_skipped(self) -> None:
        assert patch_changes(TodoPatch(text=None, done=False)) == {"done": False}


class TestTimerState:
    def test_values(self) -> None:
        assert TimerState("running") is TimerState.RUNNING
        assert TimerState.IDLE.value == "idle"


class TestAppConfig:
    def test_defaults(self) -> None:
        config = AppConfig()
        assert config.store_path is None
        assert config.backend == StoreBackend.SQLITE
        assert config.focus_minutes == 25

    def test_focus_minutes_bounds(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(focus_minutes=0)
        with pytest.raises(ValidationError):
            AppConfig(focus_minutes=121)
