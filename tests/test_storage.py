"""Tests for storage backends and EntityStore."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from daybook.models import FocusSession, StoreBackend, TodoItem
from daybook.storage import (
    DirectoryBackend,
    EntityStore,
    MemoryBackend,
    SqliteBackend,
    open_backend,
)

T0 = datetime(2024, 3, 1, 8, 30, 15, 250000, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite", "directory"])
def backend(request, tmp_path: Path):
    """Every backend must behave the same way."""
    if request.param == "memory":
        b = MemoryBackend()
    elif request.param == "sqlite":
        b = SqliteBackend(tmp_path / "test.db")
    else:
        b = DirectoryBackend(tmp_path / "slots")
    yield b
    b.close()


class TestBackends:
    def test_missing_slot_is_none(self, backend) -> None:
        assert backend.read("nothing-here") is None

    def test_write_then_read(self, backend) -> None:
        backend.write("todos", b"[1,2]")
        assert backend.read("todos") == b"[1,2]"

    def test_overwrite(self, backend) -> None:
        backend.write("todos", b"[1]")
        backend.write("todos", b"[2]")
        assert backend.read("todos") == b"[2]"

    def test_slots_are_independent(self, backend) -> None:
        backend.write("a", b"[]")
        assert backend.read("b") is None

    def test_sqlite_persists_across_connections(self, tmp_path: Path) -> None:
        path = tmp_path / "test.db"
        first = SqliteBackend(path)
        first.write("todos", b"[]")
        first.close()
        second = SqliteBackend(path)
        assert second.read("todos") == b"[]"
        second.close()

    def test_open_backend(self, tmp_path: Path) -> None:
        sqlite = open_backend(StoreBackend.SQLITE, tmp_path / "x.db")
        assert isinstance(sqlite, SqliteBackend)
        sqlite.close()
        assert isinstance(open_backend(StoreBackend.DIRECTORY, tmp_path / "d"), DirectoryBackend)


def _open_pair(kind: str, tmp_path: Path):
    """Two independent handles on one store, as two processes would hold."""
    if kind == "sqlite":
        return SqliteBackend(tmp_path / "shared.db"), SqliteBackend(tmp_path / "shared.db")
    return DirectoryBackend(tmp_path / "shared"), DirectoryBackend(tmp_path / "shared")


class TestTransactions:
    def test_nested_transaction_commits_once(self, backend) -> None:
        with backend.transaction():
            with backend.transaction():
                backend.write("todos", b"[1]")
            backend.write("todos", b"[2]")
        assert backend.read("todos") == b"[2]"

    def test_sqlite_rolls_back_on_error(self, tmp_path: Path) -> None:
        backend = SqliteBackend(tmp_path / "test.db")
        backend.write("todos", b"[1]")
        with pytest.raises(RuntimeError):
            with backend.transaction():
                backend.write("todos", b"[2]")
                raise RuntimeError("boom")
        assert backend.read("todos") == b"[1]"
        backend.close()

    @pytest.mark.parametrize("kind", ["sqlite", "directory"])
    def test_second_handle_waits_for_first(self, kind: str, tmp_path: Path) -> None:
        first, second = _open_pair(kind, tmp_path)
        entered = threading.Event()

        def other_writer() -> None:
            with second.transaction():
                entered.set()
                second.write("todos", b"[2]")

        with first.transaction():
            first.write("todos", b"[1]")
            worker = threading.Thread(target=other_writer)
            worker.start()
            assert not entered.wait(0.3)
        worker.join(timeout=5)
        assert entered.is_set()
        assert first.read("todos") == b"[2]"
        first.close()
        second.close()


class TestEntityStore:
    def test_missing_slot_loads_empty(self, backend) -> None:
        assert EntityStore(backend, "todos", TodoItem).load() == []

    def test_round_trip_keeps_instants(self, backend) -> None:
        store = EntityStore(backend, "todos", TodoItem)
        todo = TodoItem(text="A", done=True, done_at=T0, created_at=T0, updated_at=T0)
        store.save([todo])
        (loaded,) = store.load()
        assert loaded == todo
        assert loaded.done_at == T0

    def test_serialised_as_camel_case_array(self) -> None:
        backend = MemoryBackend()
        store = EntityStore(backend, "sessions", FocusSession)
        store.save([FocusSession(start_time=T0, created_at=T0, updated_at=T0)])
        data = json.loads(backend.read("sessions"))
        assert isinstance(data, list)
        assert data[0]["startTime"].startswith("2024-03-01T08:30:15")
        assert "endTime" not in data[0]

    @pytest.mark.parametrize(
        "raw", [b"not json{{{", b"\xff\xfe\x00", b'{"id": "x"}', b'"text"', b""]
    )
    def test_corrupt_slot_loads_empty(self, raw: bytes, caplog) -> None:
        backend = MemoryBackend()
        backend.write("todos", raw)
        with caplog.at_level(logging.WARNING, logger="daybook.storage"):
            assert EntityStore(backend, "todos", TodoItem).load() == []
        assert "corrupt" in caplog.text

    def test_malformed_record_skipped(self, caplog) -> None:
        backend = MemoryBackend()
        good = {"id": "a1", "text": "keep", "createdAt": T0.isoformat()}
        backend.write("todos", json.dumps([good, {"text": 3}, "nope"]).encode())
        with caplog.at_level(logging.WARNING, logger="daybook.storage"):
            items = EntityStore(backend, "todos", TodoItem).load()
        assert [t.text for t in items] == ["keep"]
        assert "Skipping malformed record" in caplog.text
        assert "next write to this slot drops it" in caplog.text

    def test_older_records_get_defaults(self) -> None:
        backend = MemoryBackend()
        old = {"id": "a1", "text": "legacy", "createdAt": "2024-03-01T08:30:00.000Z"}
        backend.write("todos", json.dumps([old]).encode())
        (todo,) = EntityStore(backend, "todos", TodoItem).load()
        assert todo.done is False
        assert todo.done_at is None
        assert todo.updated_at == todo.created_at

    def test_reads_browser_localstorage_layout(self) -> None:
        backend = MemoryBackend()
        raw = [{
            "id": "lq2x8k3abc",
            "startTime": "2024-03-01T08:30:00.000Z",
            "endTime": "2024-03-01T08:55:00.000Z",
            "duration": 1500,
            "completed": True,
            "createdAt": "2024-03-01T08:30:00.000Z",
            "updatedAt": "2024-03-01T08:55:00.000Z",
        }]
        backend.write("sessions", json.dumps(raw).encode())
        (session,) = EntityStore(backend, "sessions", FocusSession).load()
        assert session.completed
        assert (session.end_time - session.start_time).total_seconds() == 1500
