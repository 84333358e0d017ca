"""daybook CLI -- a short todo list, daily habits and a 25-minute focus timer."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterator, Optional, Sequence, TypeVar

import typer
from pydantic import ValidationError

from daybook import config as cfg
from daybook import display, suggestions
from daybook.clock import today
from daybook.errors import DaybookError, NotFound
from daybook.models import Entity, HabitPatch, StoreBackend, TimerState, TodoPatch
from daybook.progress import completed_habit_ids, habit_progress, todo_progress
from daybook.repositories import Database, open_database
from daybook.timer import TimerEngine

E = TypeVar("E", bound=Entity)

app = typer.Typer(
    name="daybook",
    help="A short todo list, daily habits and a focus timer that survives restarts.",
    no_args_is_help=True,
)
todo_app = typer.Typer(help="Keep the short list crisp and focused.", no_args_is_help=True)
habit_app = typer.Typer(help="Track repeatable wins day by day.", no_args_is_help=True)
focus_app = typer.Typer(help="25-minute focus sprints with session tracking.", no_args_is_help=True)
app.add_typer(todo_app, name="todo")
app.add_typer(habit_app, name="habit")
app.add_typer(focus_app, name="focus")

_TICK_INTERVAL = 1.0


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log storage and timer activity"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid {field}: {first['msg']}" if field else first["msg"]


@contextmanager
def _open() -> Iterator[Database]:
    """Open the configured store; report core errors as a warning and exit 1."""
    database = open_database()
    try:
        yield database
    except DaybookError as exc:
        display.print_warning(str(exc))
        raise typer.Exit(1)
    except ValidationError as exc:
        display.print_warning(_validation_message(exc))
        raise typer.Exit(1)
    finally:
        database.close()


def _resolve(items: Sequence[E], prefix: str, kind: str) -> E:
    """Find the one item whose id starts with ``prefix``."""
    matches = [item for item in items if item.id.startswith(prefix)]
    if not matches:
        raise NotFound(kind, prefix)
    if len(matches) > 1:
        raise DaybookError(f"{kind.capitalize()} id {prefix!r} is ambiguous ({len(matches)} matches).")
    return matches[0]


def _day(database: Database, value: Optional[str]) -> str:
    if value is None:
        return today(database.clock)
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise DaybookError(f"{value!r} is not a YYYY-MM-DD date.") from None


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------


@todo_app.command("add")
def todo_add(text: str = typer.Argument(..., help="What needs doing?")) -> None:
    """Add a todo."""
    with _open() as database:
        todo = asyncio.run(database.todos.create_todo(text))
    display.print_success(f"Added {display.short_id(todo.id)}: {todo.text}")


@todo_app.command("idea")
def todo_idea() -> None:
    """Add a random small task to the list."""
    with _open() as database:
        todo = asyncio.run(database.todos.create_todo(suggestions.get_todo_idea()))
    display.print_success(f"Added {display.short_id(todo.id)}: {todo.text}")


@todo_app.command("list")
def todo_list() -> None:
    """List todos with overall progress."""
    with _open() as database:
        todos = asyncio.run(database.todos.get_todos())
    display.print_todo_list(todos)
    if todos:
        done = sum(1 for t in todos if t.done)
        display.print_info(f"{todo_progress(todos)}% complete ({done} done)")


async def _patch_todo(database: Database, todo_id: str, patch: TodoPatch):
    todo = _resolve(await database.todos.get_todos(), todo_id, "todo")
    return await database.todos.update_todo(todo.id, patch)


@todo_app.command("done")
def todo_done(todo_id: str = typer.Argument(..., help="Todo id (or a unique prefix)")) -> None:
    """Mark a todo as done."""
    with _open() as database:
        todo = asyncio.run(_patch_todo(database, todo_id, TodoPatch(done=True)))
    display.print_success(f"Done: {todo.text}")


@todo_app.command("undo")
def todo_undo(todo_id: str = typer.Argument(..., help="Todo id (or a unique prefix)")) -> None:
    """Mark a todo as not done."""
    with _open() as database:
        todo = asyncio.run(_patch_todo(database, todo_id, TodoPatch(done=False)))
    display.print_success(f"Reopened: {todo.text}")


@todo_app.command("edit")
def todo_edit(
    todo_id: str = typer.Argument(..., help="Todo id (or a unique prefix)"),
    text: str = typer.Argument(..., help="New text"),
) -> None:
    """Change the text of a todo."""
    with _open() as database:
        todo = asyncio.run(_patch_todo(database, todo_id, TodoPatch(text=text)))
    display.print_success(f"Updated: {todo.text}")


async def _remove_todo(database: Database, todo_id: str):
    todo = _resolve(await database.todos.get_todos(), todo_id, "todo")
    await database.todos.delete_todo(todo.id)
    return todo


@todo_app.command("rm")
def todo_rm(todo_id: str = typer.Argument(..., help="Todo id (or a unique prefix)")) -> None:
    """Remove a todo."""
    with _open() as database:
        todo = asyncio.run(_remove_todo(database, todo_id))
    display.print_success(f"Removed: {todo.text}")


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------


@habit_app.command("add")
def habit_add(label: str = typer.Argument(..., help="A habit to repeat every day")) -> None:
    """Add a habit."""
    with _open() as database:
        habit = asyncio.run(database.habits.create_habit(label))
    display.print_success(f"Added habit {display.short_id(habit.id)}: {habit.label}")


async def _habit_day(database: Database, day: str):
    habits = await database.habits.get_active_habits()
    completions = await database.completions.get_habit_completions(day)
    return habits, completions


@habit_app.command("list")
def habit_list(
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Day to show (YYYY-MM-DD)"),
) -> None:
    """Show check-ins for active habits."""
    with _open() as database:
        day = _day(database, on)
        habits, completions = asyncio.run(_habit_day(database, day))
    display.print_habit_list(
        habits, completed_habit_ids(completions), habit_progress(habits, completions), day
    )


async def _toggle_habit(database: Database, habit_id: str, day: str, completed: bool):
    habit = _resolve(await database.habits.get_habits(), habit_id, "habit")
    await database.completions.toggle_habit_completion(habit.id, habit.label, day, completed)
    return habit


@habit_app.command("check")
def habit_check(
    habit_id: str = typer.Argument(..., help="Habit id (or a unique prefix)"),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Day to check in (YYYY-MM-DD)"),
) -> None:
    """Check a habit in for the day."""
    with _open() as database:
        day = _day(database, on)
        habit = asyncio.run(_toggle_habit(database, habit_id, day, True))
    display.print_success(f"Checked in {habit.label} for {day}.")


@habit_app.command("uncheck")
def habit_uncheck(
    habit_id: str = typer.Argument(..., help="Habit id (or a unique prefix)"),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Day to clear (YYYY-MM-DD)"),
) -> None:
    """Clear a habit's check-in for the day."""
    with _open() as database:
        day = _day(database, on)
        habit = asyncio.run(_toggle_habit(database, habit_id, day, False))
    display.print_success(f"Cleared {habit.label} for {day}.")


async def _patch_habit(database: Database, habit_id: str, patch: HabitPatch):
    habit = _resolve(await database.habits.get_habits(), habit_id, "habit")
    return await database.habits.update_habit(habit.id, patch)


@habit_app.command("disable")
def habit_disable(habit_id: str = typer.Argument(..., help="Habit id (or a unique prefix)")) -> None:
    """Stop tracking a habit without deleting it."""
    with _open() as database:
        habit = asyncio.run(_patch_habit(database, habit_id, HabitPatch(enabled=False)))
    display.print_success(f"Disabled: {habit.label}")


@habit_app.command("enable")
def habit_enable(habit_id: str = typer.Argument(..., help="Habit id (or a unique prefix)")) -> None:
    """Track a disabled habit again."""
    with _open() as database:
        habit = asyncio.run(_patch_habit(database, habit_id, HabitPatch(enabled=True)))
    display.print_success(f"Enabled: {habit.label}")


async def _remove_habit(database: Database, habit_id: str):
    habit = _resolve(await database.habits.get_habits(), habit_id, "habit")
    await database.habits.delete_habit(habit.id)
    return habit


@habit_app.command("rm")
def habit_rm(habit_id: str = typer.Argument(..., help="Habit id (or a unique prefix)")) -> None:
    """Delete a habit. Past check-ins are kept."""
    with _open() as database:
        habit = asyncio.run(_remove_habit(database, habit_id))
    display.print_success(f"Removed habit: {habit.label}")


# ---------------------------------------------------------------------------
# Focus
# ---------------------------------------------------------------------------


def _engine(database: Database, minutes: Optional[int] = None) -> TimerEngine:
    minutes = minutes or cfg.load_config().focus_minutes
    return TimerEngine(
        database.sessions, database.clock, duration=minutes * 60, tick_interval=_TICK_INTERVAL
    )


async def _watch(engine: TimerEngine) -> TimerState:
    """Show a live progress bar until the session completes."""
    snapshot = engine.snapshot()
    progress = display.create_timer_progress()
    with progress:
        task = progress.add_task(
            "Focus", total=snapshot.duration, completed=snapshot.elapsed_seconds,
            clock=snapshot.formatted,
        )

        def on_tick(snap) -> None:
            progress.update(
                task, completed=min(snap.elapsed_seconds, snap.duration), clock=snap.formatted
            )

        state = await engine.tick()
        if state is TimerState.RUNNING:
            state = await engine.run(on_tick)
    return state


def _report_completed(engine: TimerEngine) -> None:
    assert engine.session is not None
    display.console.print("\a", end="")
    minutes = display.whole_minutes(engine.session.duration)
    display.print_success(f"Focus session saved: {minutes} min.")
    display.print_nudge(suggestions.get_focus_done_message())


def _watch_or_detach(engine: TimerEngine) -> None:
    try:
        state = asyncio.run(_watch(engine))
    except KeyboardInterrupt:
        display.print_warning(
            "Stopped watching. The session keeps running; check it with `daybook focus status`."
        )
        return
    if state is TimerState.COMPLETED:
        _report_completed(engine)


@focus_app.command("start")
def focus_start(
    minutes: Optional[int] = typer.Option(
        None, "--minutes", "-m", min=1, max=120, help="Session length (default from config)"
    ),
    wait: bool = typer.Option(False, "--wait", "-w", help="Stay and show the countdown"),
) -> None:
    """Start a focus session."""
    with _open() as database:
        engine = _engine(database, minutes)
        session = asyncio.run(engine.start())
        display.print_info(
            f"Focus session {display.short_id(session.id)} started: {engine.formatted} to go."
        )
        if wait:
            _watch_or_detach(engine)


@focus_app.command("watch")
def focus_watch() -> None:
    """Follow the running session until it completes."""
    with _open() as database:
        engine = _engine(database)
        if asyncio.run(engine.restore()) is TimerState.IDLE:
            display.print_info("No focus session running. Start one with `daybook focus start`.")
            return
        _watch_or_detach(engine)


async def _restore_and_tick(engine: TimerEngine) -> TimerState:
    if await engine.restore() is TimerState.IDLE:
        return TimerState.IDLE
    return await engine.tick()


@focus_app.command("status")
def focus_status() -> None:
    """Show the current session's countdown."""
    with _open() as database:
        engine = _engine(database)
        state = asyncio.run(_restore_and_tick(engine))
    if state is TimerState.IDLE:
        display.print_info("No focus session running.")
        return
    display.print_timer(engine.snapshot())
    if state is TimerState.COMPLETED:
        _report_completed(engine)


async def _finish(engine: TimerEngine):
    if await engine.restore() is TimerState.IDLE:
        raise DaybookError("No focus session running.")
    return await engine.finish()


@focus_app.command("complete")
def focus_complete() -> None:
    """Finish the running session now, saving the time spent so far."""
    with _open() as database:
        engine = _engine(database)
        asyncio.run(_finish(engine))
    _report_completed(engine)


@focus_app.command("history")
def focus_history(
    limit: int = typer.Option(3, "--limit", "-n", min=1, help="Number of sessions to show"),
) -> None:
    """List recently completed sessions."""
    with _open() as database:
        sessions = asyncio.run(database.sessions.get_recent_sessions(limit))
    display.print_sessions(sessions)


@focus_app.command("chart")
def focus_chart(
    out: Path = typer.Option(..., "--out", "-o", help="PNG file to write"),
    days: int = typer.Option(14, "--days", min=1, max=366, help="Days to include"),
) -> None:
    """Save a bar chart of focus minutes per day."""
    from daybook.charts import focus_history as draw_history

    with _open() as database:
        sessions = asyncio.run(database.sessions.get_focus_sessions())
        end = date.fromisoformat(today(database.clock))
    image = draw_history(sessions, days=days, end=end)
    out.parent.mkdir(parents=True, exist_ok=True)
    image.save(out)
    display.print_success(f"Chart written to {out}")


# ---------------------------------------------------------------------------
# Status & configuration
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """See how your day is going."""
    with _open() as database:
        summary = asyncio.run(database.get_status())
    display.print_status(summary)


@app.command()
def config(
    store_path: Optional[str] = typer.Option(None, "--store-path", help="Set a custom store location"),
    backend: Optional[StoreBackend] = typer.Option(None, "--backend", help="sqlite or directory"),
    focus_minutes: Optional[int] = typer.Option(
        None, "--focus-minutes", min=1, max=120, help="Default focus session length"
    ),
    reset: bool = typer.Option(False, "--reset", help="Reset to the default local store"),
    show: bool = typer.Option(False, "--show", help="Show current config"),
) -> None:
    """Configure where your data is stored."""
    if store_path:
        result = cfg.set_store_path(store_path, backend)
        display.print_success(f"Store set to: {result.store_path} ({result.backend.value})")
    elif backend is not None:
        result = cfg.set_backend(backend)
        display.print_success(f"Backend set to: {result.backend.value}")
    elif focus_minutes is not None:
        result = cfg.set_focus_minutes(focus_minutes)
        display.print_success(f"Focus sessions now last {result.focus_minutes} min.")
    elif reset:
        cfg.reset_store_path()
        display.print_success("Reset to default local store.")
    elif show:
        current = cfg.load_config()
        resolved = cfg.get_store_path(current)
        suffix = "" if current.store_path else " (default)"
        display.print_info(f"Store: {resolved}{suffix}, backend {current.backend.value}")
        display.print_info(f"Focus length: {current.focus_minutes} min")
    else:
        display.print_info("Use --store-path, --backend, --focus-minutes, --reset, or --show.")
