"""SQLite-backed key/value persistence for the four focus documents."""
from __future__ import annotations

import json
import logging
import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from .errors import PersistenceFailure
from .models import SCHEMA_VERSION, AppState, Session, Settings, Task, TimerState

LOGGER = logging.getLogger(__name__)

TASKS_KEY = "tasks"
SESSIONS_KEY = "sessions"
SETTINGS_KEY = "settings"
TIMER_STATE_KEY = "timerState"
VERSION_KEY = "schemaVersion"


class Store:
    """One JSON document per key, written in its own transaction.

    Every write failure surfaces as PersistenceFailure; callers decide whether
    it is fatal (the controller treats it as "not persisted yet").
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _get_conn(self) -> Iterable[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"cannot open {self.db_path}: {exc}") from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            LOGGER.exception("Database operation failed")
            raise PersistenceFailure(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._get_conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    # Raw documents
    def read(self, key: str) -> Optional[Any]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT value FROM documents WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            LOGGER.exception("Stored document %s is not valid JSON; ignoring it", key)
            return None

    def write(self, key: str, value: Any) -> None:
        self.write_many({key: value})

    def write_many(self, documents: Dict[str, Any]) -> None:
        stamp = datetime.now().isoformat()
        rows = [(key, json.dumps(value), stamp) for key, value in documents.items()]
        with self._get_conn() as conn:
            conn.executemany(
                """
                INSERT INTO documents (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                rows,
            )
        LOGGER.debug("Persisted %s", ", ".join(documents))

    def keys(self) -> list[str]:
        with self._get_conn() as conn:
            return [row[0] for row in conn.execute("SELECT key FROM documents ORDER BY key")]

    # Schema version
    def check_version(self) -> int:
        """Return the stored version, rewriting it to the current one on mismatch.

        No record migration happens here; loaders fill defaults field by field.
        """
        stored = self.read(VERSION_KEY)
        if stored != SCHEMA_VERSION:
            LOGGER.info("Schema version %s differs from %s; rewriting tag", stored, SCHEMA_VERSION)
            self.write(VERSION_KEY, SCHEMA_VERSION)
        return stored if isinstance(stored, int) else 0

    # Typed documents
    def load_state(self) -> AppState:
        self.check_version()
        settings = Settings.from_record(self._read_mapping(SETTINGS_KEY))
        tasks = self._parse(TASKS_KEY, Task.from_record)
        sessions = self._parse(SESSIONS_KEY, Session.from_record)
        timer = TimerState.from_record(self._read_mapping(TIMER_STATE_KEY), settings)
        LOGGER.info("Loaded %s tasks and %s sessions", len(tasks), len(sessions))
        return AppState(tasks=tasks, sessions=sessions, settings=settings, timer=timer)

    def save_state(self, state: AppState) -> None:
        self.write_many(
            {
                TASKS_KEY: [t.to_record() for t in state.tasks],
                SESSIONS_KEY: [s.to_record() for s in state.sessions],
                SETTINGS_KEY: state.settings.to_record(),
                TIMER_STATE_KEY: state.timer.to_record(),
                VERSION_KEY: SCHEMA_VERSION,
            }
        )

    def save_tasks(self, tasks: Iterable[Task]) -> None:
        self.write(TASKS_KEY, [t.to_record() for t in tasks])

    def save_sessions(self, sessions: Iterable[Session]) -> None:
        self.write(SESSIONS_KEY, [s.to_record() for s in sessions])

    def save_settings(self, settings: Settings) -> None:
        self.write(SETTINGS_KEY, settings.to_record())

    def save_timer(self, timer: TimerState) -> None:
        self.write(TIMER_STATE_KEY, timer.to_record())

    def _read_mapping(self, key: str) -> Optional[dict]:
        value = self.read(key)
        if value is not None and not isinstance(value, dict):
            LOGGER.warning("Stored %s is not an object; using defaults", key)
            return None
        return value

    def _read_records(self, key: str) -> list[dict]:
        value = self.read(key)
        if value is None:
            return []
        if not isinstance(value, list):
            LOGGER.warning("Stored %s is not a list; ignoring it", key)
            return []
        records = []
        for record in value:
            if isinstance(record, dict) and record.get("id") is not None:
                records.append(record)
            else:
                LOGGER.warning("Skipping unreadable %s record %r", key, record)
        return records

    def _parse(self, key: str, factory: Callable[[dict], Any]) -> list:
        parsed = []
        for record in self._read_records(key):
            try:
                parsed.append(factory(record))
            except (KeyError, TypeError, ValueError):
                LOGGER.warning("Skipping malformed %s record %s", key, record.get("id"))
        return parsed

    def backup(self) -> Path:
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        target = self.db_path.with_name(f"{self.db_path.stem}-backup-{timestamp}{self.db_path.suffix}")
        try:
            shutil.copy2(self.db_path, target)
        except OSError as exc:
            raise PersistenceFailure(f"backup failed: {exc}") from exc
        LOGGER.info("Database backed up to %s", target)
        return target
