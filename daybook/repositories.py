"""Typed repositories over EntityStore, one per entity kind.

Every public method is a coroutine so a networked store can replace the
local one without touching callers. The work itself is synchronous and runs
under the collection lock, so no two read-modify-write cycles on the same
entity kind interleave.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence, TypeVar, Union

from daybook import config as cfg
from daybook.clock import Clock, SystemClock, today
from daybook.errors import Conflict, NotFound
from daybook.models import (
    FOCUS_SESSION_SECONDS,
    AppConfig,
    Entity,
    FocusSession,
    Habit,
    HabitCompletion,
    HabitCreate,
    HabitPatch,
    StatusSummary,
    TodoCreate,
    TodoItem,
    TodoPatch,
    patch_changes,
)
from daybook.progress import completed_habit_ids, daily_focus_minutes, habit_progress, todo_progress
from daybook.storage import Backend, EntityStore, open_backend

log = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

TODOS_SLOT = "jazz-demo-todos"
SESSIONS_SLOT = "jazz-demo-sessions"
HABITS_SLOT = "jazz-demo-habits"
COMPLETIONS_SLOT = "jazz-demo-completions"


def _index_of(items: Sequence[E], entity_id: str) -> Optional[int]:
    for index, item in enumerate(items):
        if item.id == entity_id:
            return index
    return None


class _Repository:
    slot: str
    model: type[Entity]

    def __init__(self, backend: Backend, clock: Clock) -> None:
        self._store = EntityStore(backend, self.slot, self.model)
        self._clock = clock

    def _delete(self, entity_id: str) -> bool:
        with self._store.locked():
            items = self._store.load()
            kept = [item for item in items if item.id != entity_id]
            if len(kept) == len(items):
                return False
            self._store.save(kept)
        return True


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------


class TodoRepository(_Repository):
    slot = TODOS_SLOT
    model = TodoItem

    async def get_todos(self) -> list[TodoItem]:
        return self._store.load()

    async def create_todo(self, text: str) -> TodoItem:
        """Add a todo. Surrounding whitespace is trimmed; blank text is rejected."""
        todo_in = TodoCreate(text=text)
        now = self._clock.now()
        todo = TodoItem(text=todo_in.text, created_at=now, updated_at=now)
        with self._store.locked():
            todos = self._store.load()
            todos.append(todo)
            self._store.save(todos)
        log.debug("Created todo %s.", todo.id)
        return todo

    async def update_todo(self, todo_id: str, patch: Union[TodoPatch, dict]) -> TodoItem:
        """Apply ``patch``. Marking an open todo done stamps ``done_at``."""
        changes = patch_changes(TodoPatch.model_validate(patch))
        now = self._clock.now()
        with self._store.locked():
            todos = self._store.load()
            index = _index_of(todos, todo_id)
            if index is None:
                raise NotFound("todo", todo_id)
            todo = todos[index]
            if changes.get("done") and not todo.done:
                changes["done_at"] = now
            changes["updated_at"] = now
            updated = todo.model_copy(update=changes)
            todos[index] = updated
            self._store.save(todos)
        return updated

    async def delete_todo(self, todo_id: str) -> None:
        """Remove a todo. Unknown ids are ignored."""
        if self._delete(todo_id):
            log.debug("Deleted todo %s.", todo_id)


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------


class HabitRepository(_Repository):
    slot = HABITS_SLOT
    model = Habit

    async def get_habits(self) -> list[Habit]:
        return self._store.load()

    async def get_active_habits(self) -> list[Habit]:
        """Enabled habits only; disabled ones stay stored but untracked."""
        return [h for h in self._store.load() if h.enabled]

    async def create_habit(self, label: str) -> Habit:
        habit_in = HabitCreate(label=label)
        now = self._clock.now()
        habit = Habit(label=habit_in.label, created_at=now, updated_at=now)
        with self._store.locked():
            habits = self._store.load()
            habits.append(habit)
            self._store.save(habits)
        log.debug("Created habit %s.", habit.id)
        return habit

    async def update_habit(self, habit_id: str, patch: Union[HabitPatch, dict]) -> Habit:
        changes = patch_changes(HabitPatch.model_validate(patch))
        changes["updated_at"] = self._clock.now()
        with self._store.locked():
            habits = self._store.load()
            index = _index_of(habits, habit_id)
            if index is None:
                raise NotFound("habit", habit_id)
            updated = habits[index].model_copy(update=changes)
            habits[index] = updated
            self._store.save(habits)
        return updated

    async def delete_habit(self, habit_id: str) -> None:
        """Remove a habit. Its past completions are kept."""
        if self._delete(habit_id):
            log.debug("Deleted habit %s.", habit_id)


# ---------------------------------------------------------------------------
# Habit completions
# ---------------------------------------------------------------------------


class HabitCompletionRepository(_Repository):
    slot = COMPLETIONS_SLOT
    model = HabitCompletion

    async def get_habit_completions(self, date: Optional[str] = None) -> list[HabitCompletion]:
        completions = self._store.load()
        if date:
            return [c for c in completions if c.date == date]
        return completions

    async def toggle_habit_completion(
        self, habit_id: str, habit_label: str, date: str, completed: bool
    ) -> HabitCompletion:
        """Upsert the check-in for ``(habit_id, date)``.

        An existing record for the pair is updated in place (its label stays
        as first recorded); otherwise a new record is appended. Repeated calls
        for one pair never produce a second record.
        """
        now = self._clock.now()
        with self._store.locked():
            completions = self._store.load()
            for index, existing in enumerate(completions):
                if existing.habit_id == habit_id and existing.date == date:
                    completion = existing.model_copy(
                        update={"completed": completed, "updated_at": now}
                    )
                    completions[index] = completion
                    break
            else:
                completion = HabitCompletion(
                    habit_id=habit_id,
                    habit_label=habit_label,
                    date=date,
                    completed=completed,
                    created_at=now,
                    updated_at=now,
                )
                completions.append(completion)
            self._store.save(completions)
        return completion


# ---------------------------------------------------------------------------
# Focus sessions
# ---------------------------------------------------------------------------


def _current(sessions: Sequence[FocusSession]) -> Optional[FocusSession]:
    return next((s for s in sessions if not s.completed), None)


class FocusSessionRepository(_Repository):
    slot = SESSIONS_SLOT
    model = FocusSession

    async def get_focus_sessions(self) -> list[FocusSession]:
        return self._store.load()

    async def get_current_focus_session(self) -> Optional[FocusSession]:
        """The single incomplete session, if any."""
        return _current(self._store.load())

    async def get_recent_sessions(self, limit: int = 3) -> list[FocusSession]:
        """Completed sessions, most recently started first."""
        done = [s for s in self._store.load() if s.completed]
        done.sort(key=lambda s: s.start_time, reverse=True)
        return done[:limit]

    async def start_focus_session(self, duration: int = FOCUS_SESSION_SECONDS) -> FocusSession:
        """Open a new session. Raises Conflict while another one is still open."""
        now = self._clock.now()
        with self._store.locked():
            sessions = self._store.load()
            current = _current(sessions)
            if current is not None:
                raise Conflict(f"Focus session {current.id!r} is already running.")
            session = FocusSession(
                start_time=now, duration=duration, created_at=now, updated_at=now
            )
            sessions.append(session)
            self._store.save(sessions)
        log.info("Started focus session %s (%d s).", session.id, session.duration)
        return session

    async def complete_focus_session(self, session_id: str, actual_duration: int) -> FocusSession:
        """Close a session with its actual length in seconds.

        Raises NotFound for unknown ids and Conflict if the session was
        already completed, so a second completion never rewrites the duration.
        """
        if actual_duration < 0:
            raise ValueError("actual_duration must not be negative")
        now = self._clock.now()
        with self._store.locked():
            sessions = self._store.load()
            index = _index_of(sessions, session_id)
            if index is None:
                raise NotFound("focus session", session_id)
            session = sessions[index]
            if session.completed:
                raise Conflict(f"Focus session {session_id!r} is already completed.")
            updated = session.model_copy(
                update={
                    "end_time": now,
                    "duration": int(actual_duration),
                    "completed": True,
                    "updated_at": now,
                }
            )
            sessions[index] = updated
            self._store.save(sessions)
        log.info("Completed focus session %s after %d s.", session_id, updated.duration)
        return updated


# ---------------------------------------------------------------------------
# Database facade
# ---------------------------------------------------------------------------


class Database:
    """All four repositories wired to one backend and one clock."""

    def __init__(self, backend: Backend, clock: Optional[Clock] = None) -> None:
        self.backend = backend
        self.clock = clock or SystemClock()
        self.todos = TodoRepository(backend, self.clock)
        self.habits = HabitRepository(backend, self.clock)
        self.completions = HabitCompletionRepository(backend, self.clock)
        self.sessions = FocusSessionRepository(backend, self.clock)

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    async def get_status(self, day: Optional[str] = None) -> StatusSummary:
        """Build the dashboard summary for ``day`` (default: today)."""
        day = day or today(self.clock)
        todos = await self.todos.get_todos()
        habits = await self.habits.get_active_habits()
        completions = await self.completions.get_habit_completions(day)
        sessions = await self.sessions.get_focus_sessions()
        done_ids = completed_habit_ids(completions)
        return StatusSummary(
            date=day,
            todos_total=len(todos),
            todos_done=sum(1 for t in todos if t.done),
            todo_progress=todo_progress(todos),
            habits_active=len(habits),
            habits_done=sum(1 for h in habits if h.id in done_ids),
            habit_progress=habit_progress(habits, completions),
            focus_minutes_today=daily_focus_minutes(sessions).get(day, 0),
            current_session=_current(sessions),
        )


def _get_store_path(config: AppConfig) -> Path:
    """Return the store location from config (or default)."""
    return cfg.get_store_path(config)


def open_database(config: Optional[AppConfig] = None, clock: Optional[Clock] = None) -> Database:
    """Open the configured store."""
    config = config or cfg.load_config()
    backend = open_backend(config.backend, _get_store_path(config))
    return Database(backend, clock)
