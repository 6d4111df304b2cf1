"""Single-slot persistence for the daily trading state.

The limiter only ever needs "the" current state, so every store holds exactly
one record and every save overwrites it.  ``load`` returns ``None`` when no
record exists and raises :class:`StateStoreError` when one exists but cannot
be read back; ``save`` raises :class:`StateStoreError` when the write fails.
"""

from __future__ import annotations

import json
import os
import sqlite3
import tempfile
from pathlib import Path
from typing import Protocol

from .models import DailyTradingState


class StateStoreError(Exception):
    """Persisted state could not be read or written."""


class StateStore(Protocol):
    def load(self) -> DailyTradingState | None: ...

    def save(self, state: DailyTradingState) -> None: ...


def _decode(raw: str) -> DailyTradingState:
    try:
        return DailyTradingState.from_dict(json.loads(raw))
    except (ValueError, KeyError, TypeError) as exc:
        raise StateStoreError(f"Corrupt trading state: {exc}") from exc


class InMemoryStateStore:
    """Keeps the serialized record in memory; used by tests and dry runs."""

    def __init__(self, initial: DailyTradingState | None = None) -> None:
        self._raw: str | None = None
        self.save_count = 0
        if initial is not None:
            self._raw = json.dumps(initial.to_dict())

    def load(self) -> DailyTradingState | None:
        if self._raw is None:
            return None
        return _decode(self._raw)

    def save(self, state: DailyTradingState) -> None:
        self._raw = json.dumps(state.to_dict())
        self.save_count += 1


class JsonFileStateStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> DailyTradingState | None:
        if not self.path.exists():
            return None
        try:
            raw = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise StateStoreError(f"Corrupt trading state in {self.path}: {exc}") from exc
        except OSError as exc:
            raise StateStoreError(f"Cannot read {self.path}: {exc}") from exc
        return _decode(raw)

    def save(self, state: DailyTradingState) -> None:
        payload = json.dumps(state.to_dict(), indent=2)
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # write-then-rename so a crash never leaves a half-written record
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise StateStoreError(f"Cannot write {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS daily_trading_state (
    slot INTEGER PRIMARY KEY CHECK (slot = 1),
    state_date TEXT NOT NULL,
    state_json TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


class SqliteStateStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.executescript(SCHEMA_SQL)
        return conn

    def load(self) -> DailyTradingState | None:
        try:
            conn = self._connect()
            try:
                row = conn.execute("SELECT state_json FROM daily_trading_state WHERE slot = 1").fetchone()
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as exc:
            raise StateStoreError(f"Cannot read {self.db_path}: {exc}") from exc
        if row is None:
            return None
        return _decode(row["state_json"])

    def save(self, state: DailyTradingState) -> None:
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO daily_trading_state (slot, state_date, state_json, updated_at)
                        VALUES (1, ?, ?, CURRENT_TIMESTAMP)
                        ON CONFLICT(slot) DO UPDATE SET
                            state_date = excluded.state_date,
                            state_json = excluded.state_json,
                            updated_at = excluded.updated_at
                        """,
                        (state.date, json.dumps(state.to_dict())),
                    )
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as exc:
            raise StateStoreError(f"Cannot write {self.db_path}: {exc}") from exc


def build_state_store(backend: str, json_path: Path, db_path: Path) -> StateStore:
    if backend == "sqlite":
        return SqliteStateStore(db_path)
    return JsonFileStateStore(json_path)
