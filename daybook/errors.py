"""Exceptions raised by the repositories and the focus timer."""

from __future__ import annotations


class DaybookError(Exception):
    """Base class for every error the core reports to its caller."""


class NotFound(DaybookError):
    """An update or completion referenced an id that is not stored."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind.capitalize()} {entity_id!r} not found.")
        self.kind = kind
        self.entity_id = entity_id


class Conflict(DaybookError):
    """The operation clashes with existing state (e.g. a session is already running)."""


class StorageCorrupt(DaybookError):
    """A durable slot holds bytes that do not decode to a JSON array."""

    def __init__(self, slot: str, reason: str) -> None:
        super().__init__(f"Slot {slot!r} is corrupt: {reason}")
        self.slot = slot
        self.reason = reason


class InvalidTransition(DaybookError):
    """A timer action is not allowed in the current state."""

    def __init__(self, state: str, action: str) -> None:
        super().__init__(f"Cannot {action} a timer that is {state}.")
        self.state = state
        self.action = action
