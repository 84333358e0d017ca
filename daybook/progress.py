"""Completion percentages derived from already-loaded collections. No storage access."""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import tzinfo
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from daybook.models import FocusSession, Habit, HabitCompletion, TodoItem

T = TypeVar("T")


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``round`` would go to even)."""
    return int(math.floor(value + 0.5))


def percent_complete(items: Sequence[T], is_done: Callable[[T], bool]) -> int:
    """Share of ``items`` satisfying ``is_done``, in whole percent. 0 for no items."""
    if not items:
        return 0
    done = sum(1 for item in items if is_done(item))
    return round_half_up(100 * done / len(items))


def todo_progress(todos: Sequence[TodoItem]) -> int:
    return percent_complete(todos, lambda todo: todo.done)


def completed_habit_ids(completions: Iterable[HabitCompletion]) -> set[str]:
    """Ids of habits with a positive check-in among ``completions``."""
    return {c.habit_id for c in completions if c.completed}


def habit_progress(habits: Sequence[Habit], completions: Iterable[HabitCompletion]) -> int:
    """Percent of enabled habits checked in. Pass one day's completions."""
    active = [h for h in habits if h.enabled]
    done = completed_habit_ids(completions)
    return percent_complete(active, lambda habit: habit.id in done)


def daily_focus_minutes(
    sessions: Iterable[FocusSession], tz: Optional[tzinfo] = None
) -> dict[str, int]:
    """Completed focus minutes per calendar date of the session start.

    Dates are local unless ``tz`` is given.
    """
    seconds: dict[str, int] = defaultdict(int)
    for session in sessions:
        if not session.completed:
            continue
        day = session.start_time.astimezone(tz).date().isoformat()
        seconds[day] += session.duration
    return {day: total // 60 for day, total in seconds.items()}
