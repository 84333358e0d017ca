"""Matplotlib chart of focus history.

Figures use a dark theme and are returned as PIL images so callers can save
or embed them without touching matplotlib.
"""

from __future__ import annotations

import io
from datetime import date, timedelta, tzinfo
from typing import Iterable, Optional

import matplotlib
matplotlib.use("Agg")  # non-interactive backend -- render to image buffers
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure
from PIL import Image

from daybook.models import FocusSession
from daybook.progress import daily_focus_minutes

# -- Palette --------------------------------------------------------------
_BG = "#2b2b2b"
_FG = "#e0e0e0"
_ACCENT = "#6a9fb5"
_MEAN_LINE = "#b5916a"
_GRID = "#444444"


def _fig_to_pil(fig: Figure, dpi: int = 100) -> Image.Image:
    """Render a matplotlib Figure to a PIL Image and close it."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=dpi, bbox_inches="tight",
                facecolor=fig.get_facecolor(), edgecolor="none")
    plt.close(fig)
    buf.seek(0)
    return Image.open(buf)


def focus_minutes_series(
    sessions: Iterable[FocusSession],
    days: int,
    end: date,
    tz: Optional[tzinfo] = None,
) -> tuple[list[date], np.ndarray]:
    """Minutes focused on each of the ``days`` days ending at ``end`` (inclusive)."""
    per_day = daily_focus_minutes(sessions, tz=tz)
    dates = [end - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    values = np.array([per_day.get(d.isoformat(), 0) for d in dates], dtype=float)
    return dates, values


def focus_history(
    sessions: Iterable[FocusSession],
    *,
    days: int = 14,
    end: Optional[date] = None,
    tz: Optional[tzinfo] = None,
    title: str = "Focus minutes per day",
    size: tuple[int, int] = (640, 320),
    dpi: int = 100,
) -> Image.Image:
    """Draw a bar chart of completed focus minutes and return it as a PIL Image."""
    if days < 1:
        raise ValueError("days must be at least 1")
    dates, values = focus_minutes_series(sessions, days, end or date.today(), tz)

    fig = plt.figure(figsize=(size[0] / dpi, size[1] / dpi), dpi=dpi, facecolor=_BG)
    ax = fig.add_subplot(111)
    ax.set_facecolor(_BG)

    x = np.arange(len(dates))
    ax.bar(x, values, color=_ACCENT, width=0.7)
    if values.any():
        ax.axhline(values.mean(), color=_MEAN_LINE, linewidth=1, linestyle="--",
                   label=f"mean {values.mean():.0f} min")
        ax.legend(facecolor=_BG, edgecolor=_GRID, labelcolor=_FG, fontsize=8)

    step = max(1, len(dates) // 7)
    ax.set_xticks(x[::step])
    ax.set_xticklabels([d.strftime("%d %b") for d in dates[::step]], color=_FG, fontsize=8)
    ax.tick_params(axis="y", colors=_FG, labelsize=8)
    ax.set_ylim(bottom=0, top=max(30.0, float(values.max()) * 1.15))
    ax.grid(axis="y", color=_GRID, linewidth=0.5)
    for spine in ax.spines.values():
        spine.set_color(_GRID)
    ax.set_title(title, color=_FG, fontsize=11)

    return _fig_to_pil(fig, dpi)
