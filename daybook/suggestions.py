"""Small-step todo ideas and focus-session messages.

Ideas are loaded from ``IDEAS.md`` at the project root when it exists: one
bullet (``- ...``) per idea. Otherwise a built-in list is used.
"""

from __future__ import annotations

import random
from pathlib import Path
from typing import Optional

_FALLBACK_IDEAS: list[str] = [
    "Review sprint goals",
    "Plan tomorrow's top 3",
    "Tidy the inbox",
    "Ship one small fix",
    "Take a 10-minute walk",
]

_FOCUS_DONE_MESSAGES: list[str] = [
    "Session saved. Stand up and stretch for a minute.",
    "That is one focused block in the bag.",
    "Nice sprint. Get some water before the next one.",
    "Done. Look at something far away for twenty seconds.",
]

_IDEAS_FILE = Path(__file__).resolve().parent.parent / "IDEAS.md"


def load_ideas(md_path: Optional[Path] = None) -> list[str]:
    """Parse bullet points from an ideas file, falling back to the built-in list."""
    md_path = md_path or _IDEAS_FILE
    if not md_path.exists():
        return _FALLBACK_IDEAS

    ideas: list[str] = []
    for line in md_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped.startswith("- "):
            idea = stripped[2:].strip()
            if idea:
                ideas.append(idea)
    return ideas if ideas else _FALLBACK_IDEAS


def get_todo_idea() -> str:
    """Return a random small task to put on the list."""
    return random.choice(load_ideas())


def get_focus_done_message() -> str:
    return random.choice(_FOCUS_DONE_MESSAGES)
