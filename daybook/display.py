"""Rich terminal formatting helpers."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table
from rich.text import Text

from daybook.models import FocusSession, Habit, StatusSummary, TimerSnapshot, TimerState, TodoItem
from daybook.progress import round_half_up

console = Console()

SHORT_ID_LENGTH = 8

_TIMER_STYLE: dict[TimerState, str] = {
    TimerState.IDLE: "dim",
    TimerState.RUNNING: "bold cyan",
    TimerState.PAUSED: "yellow",
    TimerState.COMPLETED: "green",
}


def short_id(entity_id: str) -> str:
    return entity_id[:SHORT_ID_LENGTH]


def whole_minutes(seconds: int) -> int:
    return round_half_up(seconds / 60)


def _progress_line(percent: int, done: int, total: int) -> str:
    return f"{percent}% complete ({done}/{total} done)"


def print_todo_list(todos: list[TodoItem], title: str = "Todos") -> None:
    """Print the todo list in a panel with its completion line."""
    if not todos:
        console.print(Panel("No tasks yet. Add your first one.", title=title, border_style="dim"))
        return

    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("status", width=3)
    table.add_column("id", width=SHORT_ID_LENGTH + 1)
    table.add_column("text")

    for todo in todos:
        table.add_row(
            Text("[x]" if todo.done else "[ ]"),
            short_id(todo.id),
            Text(todo.text),
            style="green strike" if todo.done else None,
        )
    console.print(Panel(table, title=title, border_style="blue"))


def print_habit_list(
    habits: list[Habit], done_ids: set[str], percent: int, day: str
) -> None:
    """Print one day's habit check-ins."""
    title = f"Habits for {day}"
    if not habits:
        console.print(Panel("No habits yet. Add your first one.", title=title, border_style="dim"))
        return

    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("status", width=3)
    table.add_column("id", width=SHORT_ID_LENGTH + 1)
    table.add_column("label")
    for habit in habits:
        checked = habit.id in done_ids
        table.add_row(
            Text("[x]" if checked else "[ ]"),
            short_id(habit.id),
            Text(habit.label),
            style="green" if checked else None,
        )
    done = sum(1 for h in habits if h.id in done_ids)
    table.add_row("", "", Text(_progress_line(percent, done, len(habits)), style="dim"))
    console.print(Panel(table, title=title, border_style="blue"))


def print_timer(snapshot: TimerSnapshot) -> None:
    """Print the big MM:SS readout and where the session stands."""
    style = _TIMER_STYLE[snapshot.state]
    body = Text(snapshot.formatted, justify="center", style=f"{style} bold")
    body.append(f"\n{snapshot.state.value} - {snapshot.progress_percent}%", style="dim")
    console.print(Panel(body, title="Focus timer", border_style="magenta", padding=(1, 4)))


def print_sessions(sessions: list[FocusSession], title: str = "Recent sessions") -> None:
    if not sessions:
        console.print(Panel("No completed sessions yet.", title=title, border_style="dim"))
        return
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("started")
    table.add_column("minutes", justify="right")
    for session in sessions:
        started = session.start_time.astimezone()
        table.add_row(
            f"{started:%Y-%m-%d} at {started:%H:%M}",
            f"{whole_minutes(session.duration)}m",
        )
    console.print(Panel(table, title=title, border_style="blue"))


def print_status(summary: StatusSummary) -> None:
    """Print the full status dashboard."""
    lines: list[str] = [
        f"Todos: {_progress_line(summary.todo_progress, summary.todos_done, summary.todos_total)}",
        f"Habits: {_progress_line(summary.habit_progress, summary.habits_done, summary.habits_active)}",
        f"Focus time today: {summary.focus_minutes_today} min",
    ]
    if summary.current_session is not None:
        started = summary.current_session.start_time.astimezone()
        lines.append(f"Focus session running since {started:%H:%M}")
    console.print(Panel("\n".join(lines), title=f"Status {summary.date}", border_style="green"))


def print_nudge(message: str) -> None:
    """Print a message in a styled panel."""
    text = Text(message, justify="center")
    console.print(Panel(text, border_style="magenta", padding=(1, 4)))


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{escape(message)}[/green]")


def print_info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[blue]{escape(message)}[/blue]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]{escape(message)}[/yellow]")


def create_timer_progress() -> Progress:
    """Create a Rich progress bar for the focus timer."""
    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TextColumn("{task.fields[clock]}"),
        console=console,
    )
