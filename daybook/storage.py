"""Durable key/value backends and the generic EntityStore on top of them.

A backend maps slot names to raw bytes. Each entity kind lives in one slot
as a JSON array of records; EntityStore turns that array into models and
back, treating a corrupt slot as an empty one.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from pathlib import Path
from typing import ContextManager, Generic, Iterator, Optional, Protocol, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from daybook.errors import StorageCorrupt
from daybook.models import StoreBackend

log = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class Backend(Protocol):
    def read(self, slot: str) -> Optional[bytes]:
        """Return the bytes stored under ``slot``, or None if it was never written."""

    def write(self, slot: str, data: bytes) -> None:
        """Replace the contents of ``slot``."""

    def transaction(self) -> ContextManager[None]:
        """Hold exclusive write access to the store, across processes, until exit."""

    def close(self) -> None:
        """Release any handle held by the backend."""


class MemoryBackend:
    """Process-local backend for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._slots: dict[str, bytes] = {}

    def read(self, slot: str) -> Optional[bytes]:
        return self._slots.get(slot)

    def write(self, slot: str, data: bytes) -> None:
        self._slots[slot] = bytes(data)

    def transaction(self) -> ContextManager[None]:
        return nullcontext()

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS slots (
    name        TEXT PRIMARY KEY,
    data        BLOB NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_BUSY_TIMEOUT = 10.0


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Open an autocommit connection and ensure the schema exists."""
    conn = sqlite3.connect(
        str(db_path), timeout=_BUSY_TIMEOUT, isolation_level=None, check_same_thread=False
    )
    conn.row_factory = sqlite3.Row
    conn.executescript(_SCHEMA)
    return conn


class SqliteBackend:
    """One row per slot in a single SQLite file.

    ``transaction()`` issues ``BEGIN IMMEDIATE``, so a second connection to the
    same file (another process, or another ``SqliteBackend``) waits until the
    first one commits before it can read-modify-write.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = get_connection(self.path)

    def read(self, slot: str) -> Optional[bytes]:
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM slots WHERE name = ?", (slot,)
            ).fetchone()
        return bytes(row["data"]) if row else None

    def write(self, slot: str, data: bytes) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            self._conn.execute(
                """INSERT INTO slots (name, data, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(name) DO UPDATE SET data = excluded.data,
                                                   updated_at = excluded.updated_at""",
                (slot, sqlite3.Binary(data), now),
            )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._depth = 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()


# ---------------------------------------------------------------------------
# Plain files
# ---------------------------------------------------------------------------

_LOCK_FILE = ".lock"


class DirectoryBackend:
    """One ``<slot>.json`` file per slot inside a directory.

    Writers serialise on an ``flock`` of ``.lock`` in the same directory.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._depth = 0

    def _file(self, slot: str) -> Path:
        return self.path / f"{slot}.json"

    def read(self, slot: str) -> Optional[bytes]:
        try:
            return self._file(slot).read_bytes()
        except FileNotFoundError:
            return None

    def write(self, slot: str, data: bytes) -> None:
        target = self._file(slot)
        tmp = target.with_suffix(".json.tmp")
        with self.transaction():
            tmp.write_bytes(data)
            os.replace(tmp, target)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            with (self.path / _LOCK_FILE).open("a") as handle:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                self._depth = 1
                try:
                    yield
                finally:
                    self._depth = 0
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def close(self) -> None:
        pass


def open_backend(kind: StoreBackend, path: Path) -> Backend:
    """Create the backend configured for ``path``."""
    if kind is StoreBackend.DIRECTORY:
        return DirectoryBackend(path)
    return SqliteBackend(path)


# ---------------------------------------------------------------------------
# EntityStore
# ---------------------------------------------------------------------------


class EntityStore(Generic[T]):
    """Typed load/save of one entity kind against one named slot."""

    def __init__(self, backend: Backend, slot: str, model: type[T]) -> None:
        self.backend = backend
        self.slot = slot
        self.model = model
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the collection lock and a backend write transaction.

        Wrap every read-modify-write in this so neither another thread nor
        another process sharing the store can save in between.
        """
        with self._lock, self.backend.transaction():
            yield

    def _decode(self, raw: bytes) -> list:
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StorageCorrupt(self.slot, str(exc)) from exc
        if not isinstance(data, list):
            raise StorageCorrupt(self.slot, f"expected a JSON array, got {type(data).__name__}")
        return data

    def load(self) -> list[T]:
        """Return every stored record. Missing or corrupt slots read as empty."""
        with self._lock:
            raw = self.backend.read(self.slot)
        if raw is None:
            return []
        try:
            records = self._decode(raw)
        except StorageCorrupt as exc:
            log.warning("%s Treating it as empty.", exc)
            return []

        items: list[T] = []
        for index, record in enumerate(records):
            try:
                items.append(self.model.model_validate(record))
            except ValidationError as exc:
                log.warning(
                    "Skipping malformed record %d in slot %r (%d error(s)). "
                    "The next write to this slot drops it.",
                    index, self.slot, exc.error_count(),
                )
        log.debug("Loaded %d record(s) from slot %r.", len(items), self.slot)
        return items

    def save(self, items: Sequence[T]) -> None:
        """Replace the slot with ``items``."""
        payload = [
            item.model_dump(mode="json", by_alias=True, exclude_none=True)
            for item in items
        ]
        data = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        with self._lock:
            self.backend.write(self.slot, data)
        log.debug("Saved %d record(s) to slot %r.", len(payload), self.slot)
