"""Tests for the charts module."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from PIL import Image

from daybook.charts import focus_history, focus_minutes_series
from daybook.models import FocusSession


def _make_session(
    start: datetime, minutes: int = 25, completed: bool = True
) -> FocusSession:
    """Helper to build a fake focus session."""
    return FocusSession(
        start_time=start,
        end_time=start + timedelta(minutes=minutes) if completed else None,
        duration=minutes * 60,
        completed=completed,
        created_at=start,
        updated_at=start,
    )


END = date(2024, 3, 10)
NOON = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestFocusMinutesSeries:
    def test_days_in_order(self) -> None:
        dates, values = focus_minutes_series([], days=3, end=END, tz=timezone.utc)
        assert dates == [date(2024, 3, 8), date(2024, 3, 9), END]
        assert values.tolist() == [0.0, 0.0, 0.0]

    def test_values_per_day(self) -> None:
        sessions = [
            _make_session(NOON),
            _make_session(NOON - timedelta(days=1), minutes=50),
            _make_session(NOON - timedelta(days=1), completed=False),
            _make_session(NOON - timedelta(days=30)),
        ]
        _, values = focus_minutes_series(sessions, days=3, end=END, tz=timezone.utc)
        assert values.tolist() == [0.0, 50.0, 25.0]


class TestFocusHistory:
    def test_returns_image(self) -> None:
        img = focus_history([_make_session(NOON)], end=END, tz=timezone.utc)
        assert isinstance(img, Image.Image)
        assert img.size[0] > 0 and img.size[1] > 0

    def test_returns_image_no_data(self) -> None:
        img = focus_history([], end=END)
        assert isinstance(img, Image.Image)

    def test_custom_size(self) -> None:
        img = focus_history([_make_session(NOON)], days=30, end=END, size=(300, 200), dpi=50)
        assert isinstance(img, Image.Image)

    def test_zero_days_rejected(self) -> None:
        with pytest.raises(ValueError):
            focus_history([], days=0)
