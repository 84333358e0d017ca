"""Pydantic models -- single source of truth for all data types.

Entities serialise with camelCase aliases (``createdAt``, ``habitId``...) so
slots written by older versions of the app load unchanged.
"""

from __future__ import annotations

import enum
import itertools
import secrets
import time
from datetime import date, datetime, timezone
from typing import Annotated, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

FOCUS_SESSION_SECONDS = 25 * 60

_id_sequence = itertools.count()


def new_id() -> str:
    """Return an opaque id, unique within the process.

    The random head keeps short prefixes distinguishable; the tail combines
    the millisecond clock with a process-wide counter so two calls in the
    same millisecond still differ.
    """
    millis = int(time.time() * 1000)
    return f"{secrets.token_hex(4)}{millis:x}{next(_id_sequence):x}"


def _check_calendar_date(value: str) -> str:
    # fromisoformat also takes week dates and compact forms like 20240101
    if date.fromisoformat(value).isoformat() != value:
        raise ValueError("calendar date must be YYYY-MM-DD")
    return value


CalendarDate = Annotated[str, AfterValidator(_check_calendar_date)]


class Entity(BaseModel):
    """Attributes shared by every persisted record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_id, min_length=1)
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _default_updated_at(cls, data):
        if isinstance(data, dict):
            created = data.get("createdAt", data.get("created_at"))
            if data.get("updatedAt") is None and data.get("updated_at") is None:
                data = {**data, "updatedAt": created}
        return data

    @field_validator("*", mode="after")
    @classmethod
    def _assume_utc(cls, value):
        # Naive timestamps come from hand-edited or very old slots.
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _updated_not_before_created(self):
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at
        return self


class TodoItem(Entity):
    """A single todo on the sprint list."""

    text: str
    done: bool = False
    done_at: Optional[datetime] = None


class Habit(Entity):
    """A repeatable daily habit."""

    label: str
    enabled: bool = True


class HabitCompletion(Entity):
    """Check-in state of one habit on one calendar date."""

    habit_id: str
    habit_label: str = ""
    date: CalendarDate
    completed: bool = False


class FocusSession(Entity):
    """A focus sprint. ``duration`` is the target until completed, then the actual length."""

    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int = Field(default=FOCUS_SESSION_SECONDS, ge=0)
    completed: bool = False

    @model_validator(mode="before")
    @classmethod
    def _default_start_time(cls, data):
        if isinstance(data, dict) and data.get("startTime") is None and data.get("start_time") is None:
            data = {**data, "startTime": data.get("createdAt", data.get("created_at"))}
        return data

    @model_validator(mode="after")
    def _end_time_only_when_completed(self):
        if self.end_time is not None and not self.completed:
            raise ValueError("end_time is only set on completed sessions")
        return self


# ---------------------------------------------------------------------------
# Inputs and patches
# ---------------------------------------------------------------------------


class TodoCreate(BaseModel):
    """Input model for creating a todo."""

    model_config = ConfigDict(str_strip_whitespace=True)

    text: str = Field(min_length=1, max_length=500)


class TodoPatch(BaseModel):
    """Mutable todo fields. Only fields that are explicitly set get applied."""

    model_config = ConfigDict(str_strip_whitespace=True)

    text: Optional[str] = Field(default=None, min_length=1, max_length=500)
    done: Optional[bool] = None


class HabitCreate(BaseModel):
    """Input model for creating a habit."""

    model_config = ConfigDict(str_strip_whitespace=True)

    label: str = Field(min_length=1, max_length=200)


class HabitPatch(BaseModel):
    """Mutable habit fields. Only fields that are explicitly set get applied."""

    model_config = ConfigDict(str_strip_whitespace=True)

    label: Optional[str] = Field(default=None, min_length=1, max_length=200)
    enabled: Optional[bool] = None


def patch_changes(patch: BaseModel) -> dict:
    """Return the fields a patch explicitly sets, skipping explicit ``None``."""
    return {
        name: value
        for name, value in patch.model_dump(exclude_unset=True).items()
        if value is not None
    }


# ---------------------------------------------------------------------------
# Timer and dashboard
# ---------------------------------------------------------------------------


class TimerState(str, enum.Enum):
    """Focus timer states. Only the session behind RUNNING/PAUSED is persisted."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class TimerSnapshot(BaseModel):
    """What a timer view needs to render one frame."""

    state: TimerState
    session_id: Optional[str] = None
    duration: int = Field(ge=0)
    elapsed_seconds: int = Field(ge=0)
    seconds_remaining: int = Field(ge=0)
    progress_percent: int = Field(ge=0, le=100)
    formatted: str


class StatusSummary(BaseModel):
    """Dashboard data for the status command."""

    date: CalendarDate
    todos_total: int = Field(default=0, ge=0)
    todos_done: int = Field(default=0, ge=0)
    todo_progress: int = Field(default=0, ge=0, le=100)
    habits_active: int = Field(default=0, ge=0)
    habits_done: int = Field(default=0, ge=0)
    habit_progress: int = Field(default=0, ge=0, le=100)
    focus_minutes_today: int = Field(default=0, ge=0)
    current_session: Optional[FocusSession] = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class StoreBackend(str, enum.Enum):
    """Where the entity slots are kept on disk."""

    SQLITE = "sqlite"
    DIRECTORY = "directory"


class AppConfig(BaseModel):
    """Application configuration (persisted to ~/.config/daybook/config.json)."""

    store_path: Optional[str] = None  # None = use default (~/.local/share/daybook/)
    backend: StoreBackend = StoreBackend.SQLITE
    focus_minutes: int = Field(default=FOCUS_SESSION_SECONDS // 60, gt=0, le=120)
