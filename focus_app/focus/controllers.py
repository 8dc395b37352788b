"""Controllers orchestrating the timer, registries, persistence and exports."""
from __future__ import annotations

import json
import logging
import threading
import tomllib
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from . import stats
from .clock import Clock, SystemClock
from .errors import InvalidInput, MalformedImport, NotFound, PersistenceFailure
from .events import EventBus, PersistenceFailed, SessionsChanged, TasksChanged
from .ledger import SessionLedger, TaskRegistry
from .models import SCHEMA_VERSION, AppState, Session, Settings, Task, TimerMode, TimerState, to_iso
from .recovery import RecoveryManager
from .scheduler import ThreadTickScheduler, TickScheduler
from .storage import Store
from .timers import TimerEngine

if TYPE_CHECKING:
    from reports.excel_export import ExcelExporter

LOGGER = logging.getLogger(__name__)


CONFIG_DIR = Path.home() / ".focus_timer"
CONFIG_FILE = CONFIG_DIR / "config.toml"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default_config.toml"

IMPORT_MODES = ("replace", "merge")


@dataclass
class AppConfig:
    data_path: str
    export_path: str
    log_level: str = "INFO"
    auto_start_delay_seconds: float = 1.0
    breakdown_top_n: int = 5
    history_page_size: int = 4

    @classmethod
    def from_toml(cls, data: dict) -> "AppConfig":
        try:
            delay = float(data.get("auto_start_delay_seconds", 1.0))
        except (TypeError, ValueError):
            delay = 1.0
        return cls(
            data_path=data.get("data_path", str(CONFIG_DIR / "data.db")),
            export_path=data.get("export_path", str(CONFIG_DIR / "history.xlsx")),
            log_level=str(data.get("log_level", "INFO")).upper(),
            auto_start_delay_seconds=max(0.0, delay),
            breakdown_top_n=max(1, int(data.get("breakdown_top_n", 5))),
            history_page_size=max(1, int(data.get("history_page_size", 4))),
        )

    def to_toml(self) -> str:
        lines = [
            f"data_path = \"{self.data_path}\"",
            f"export_path = \"{self.export_path}\"",
            f"log_level = \"{self.log_level}\"",
            f"auto_start_delay_seconds = {float(self.auto_start_delay_seconds)}",
            f"breakdown_top_n = {self.breakdown_top_n}",
            f"history_page_size = {self.history_page_size}",
        ]
        return "\n".join(lines) + "\n"

    @property
    def resolved_data_path(self) -> Path:
        return Path(self.data_path).expanduser()

    @property
    def resolved_export_path(self) -> Path:
        return Path(self.export_path).expanduser()


class ConfigManager:
    def __init__(self, config_file: Path = CONFIG_FILE) -> None:
        self.config_file = Path(config_file)
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config = self._load()

    def _load(self) -> AppConfig:
        if self.config_file.exists():
            with open(self.config_file, "rb") as fh:
                data = tomllib.load(fh)
                return AppConfig.from_toml(data)
        with open(DEFAULT_CONFIG_PATH, "rb") as fh:
            data = tomllib.load(fh)
            config = AppConfig.from_toml(data)
            self.save(config)
            return config

    def save(self, config: Optional[AppConfig] = None) -> None:
        cfg = config or self.config
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(cfg.to_toml(), encoding="utf-8")
        LOGGER.info("Saved configuration to %s", self.config_file)


@dataclass
class ImportResult:
    mode: str
    tasks_added: int
    sessions_added: int


class AppController:
    """The single owner of the in-memory state.

    Every command runs under one re-entrant lock shared with the timer engine,
    mutates memory first and then writes a snapshot to the store. A failed
    write never undoes the mutation; it is logged, remembered in
    ``persistence_error`` and published as PersistenceFailed.
    """

    def __init__(
        self,
        store: Store,
        config: AppConfig,
        clock: Optional[Clock] = None,
        scheduler: Optional[TickScheduler] = None,
        bus: Optional[EventBus] = None,
        exporter: Optional[ExcelExporter] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.store = store
        self.config = config
        self.clock = clock or SystemClock()
        self.bus = bus or EventBus()
        self.exporter = exporter
        self.tz = tz
        self.lock = threading.RLock()
        self.persistence_error: Optional[PersistenceFailure] = None
        self.state = self._load_state()
        self.tasks = TaskRegistry(self.state, self.clock)
        self.ledger = SessionLedger(self.state, self.tasks)
        self.engine = TimerEngine(
            self.state,
            self.ledger,
            self.clock,
            scheduler or ThreadTickScheduler(),
            self.bus,
            persist=self._persist,
            lock=self.lock,
            auto_start_delay=config.auto_start_delay_seconds,
        )
        self.recovery = RecoveryManager(self.engine, self.clock)

    def _load_state(self) -> AppState:
        try:
            return self.store.load_state()
        except PersistenceFailure as exc:
            LOGGER.exception("Could not load saved data; starting empty")
            self.persistence_error = exc
            return AppState.initial()

    def startup(self) -> str:
        """Reconcile the timer with the wall clock. Call once, before rendering."""
        return self.recovery.recover()

    def shutdown(self) -> None:
        self.engine.shutdown()
        self._persist("tasks", "sessions", "settings", "timer")

    # Persistence
    def _persist(self, *keys: str) -> bool:
        writers = {
            "tasks": lambda: self.store.save_tasks(self.state.tasks),
            "sessions": lambda: self.store.save_sessions(self.state.sessions),
            "settings": lambda: self.store.save_settings(self.state.settings),
            "timer": lambda: self.store.save_timer(self.state.timer),
        }
        ok = True
        for key in keys:
            try:
                writers[key]()
            except PersistenceFailure as exc:
                ok = False
                LOGGER.exception("Could not persist %s; keeping it in memory", key)
                self.persistence_error = exc
                self.bus.publish(PersistenceFailed(exc))
        if ok and self.persistence_error is not None:
            LOGGER.info("Persistence recovered")
            self.persistence_error = None
        if "tasks" in keys:
            self.bus.publish(TasksChanged(list(self.state.tasks)))
        if "sessions" in keys:
            self.bus.publish(SessionsChanged(list(self.state.sessions)))
        return ok

    # Timer operations
    @property
    def timer(self) -> TimerState:
        return self.state.timer

    def start(self) -> None:
        self.engine.start()

    def pause(self) -> None:
        self.engine.pause()

    def toggle(self) -> None:
        with self.lock:
            if self.timer.is_running:
                self.engine.pause()
            else:
                self.engine.start()

    def reset(self) -> None:
        self.engine.reset()

    def skip(self) -> None:
        self.engine.skip()

    def switch_mode(self, mode: Any, confirm: Optional[Callable[[str], bool]] = None) -> bool:
        """Switch modes; a running interval is only discarded if ``confirm`` agrees."""
        try:
            target = TimerMode.parse(mode)
        except ValueError as exc:
            raise InvalidInput(f"unknown mode {mode!r}") from exc
        with self.lock:
            if target is self.timer.mode:
                return False
            if self.timer.is_running and confirm is not None:
                if not confirm("Switching modes will reset the current timer. Continue?"):
                    return False
            return self.engine.switch_mode(target)

    # Task management
    def list_tasks(self) -> List[Task]:
        return self.tasks.ordered()

    def add_task(self, name: str, color: Optional[str] = None) -> Task:
        with self.lock:
            task = self.tasks.add(name, color)
            self._persist("tasks")
            return task

    def edit_task(self, task_id: str, name: str, color: Optional[str] = None) -> Optional[Task]:
        with self.lock:
            try:
                task = self.tasks.edit(task_id, name, color)
            except NotFound as exc:
                LOGGER.warning("Edit ignored: %s", exc)
                return None
            self._persist("tasks", "sessions")
            return task

    def delete_task(self, task_id: str) -> bool:
        with self.lock:
            try:
                self.tasks.delete(task_id)
            except NotFound as exc:
                LOGGER.warning("Delete ignored: %s", exc)
                return False
            self.engine.release_task(task_id)
            self._persist("tasks")
            return True

    def toggle_task_complete(self, task_id: str) -> Optional[Task]:
        with self.lock:
            try:
                task = self.tasks.toggle_complete(task_id)
            except NotFound as exc:
                LOGGER.warning("Toggle ignored: %s", exc)
                return None
            if task.completed:
                self.engine.release_task(task_id)
            self._persist("tasks")
            return task

    def bind_task_and_start(self, task_id: str) -> bool:
        with self.lock:
            try:
                self.tasks.get(task_id)
            except NotFound as exc:
                LOGGER.warning("Bind ignored: %s", exc)
                return False
            self.engine.bind_and_start(task_id)
            return True

    # Session history
    def edit_session(self, session_id: str, duration_minutes: Any) -> Optional[Session]:
        try:
            minutes = int(duration_minutes)
            if isinstance(duration_minutes, bool) or minutes != float(duration_minutes):
                raise ValueError(duration_minutes)
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"duration {duration_minutes!r} is not a whole number of minutes") from exc
        if minutes < 1:
            raise InvalidInput("duration must be at least one minute")
        with self.lock:
            try:
                session = self.ledger.edit(session_id, minutes * 60)
            except NotFound as exc:
                LOGGER.warning("Edit ignored: %s", exc)
                return None
            self._persist("tasks", "sessions")
            return session

    def delete_session(self, session_id: str) -> bool:
        with self.lock:
            try:
                self.ledger.delete(session_id)
            except NotFound as exc:
                LOGGER.warning("Delete ignored: %s", exc)
                return False
            self._persist("tasks", "sessions")
            return True

    def clear_all_history(self) -> int:
        with self.lock:
            removed = self.ledger.clear()
            self._persist("sessions")
            return removed

    # Settings
    @property
    def settings(self) -> Settings:
        return self.state.settings

    def save_settings(self, updates: Dict[str, Any]) -> Settings:
        """Shallow-merge camelCase ``updates`` into the settings and persist them."""
        with self.lock:
            self.state.settings = self.state.settings.merged(updates)
            self._persist("settings")
            self.engine.apply_settings()
            LOGGER.info("Settings saved")
            return self.state.settings

    # Statistics
    def now(self) -> datetime:
        return self.clock.now_datetime()

    def stats_summary(self) -> stats.StatsSummary:
        return stats.summary(self.state.sessions, self.now(), self.tz)

    def period_totals(self) -> stats.PeriodTotals:
        return stats.period_totals(self.state.sessions, self.now(), self.tz)

    def breakdown(self, period: str = stats.TODAY) -> List[stats.BreakdownEntry]:
        sessions = stats.filter_sessions(self.state.sessions, period, self.now(), self.tz)
        return stats.task_breakdown(sessions, self.config.breakdown_top_n)

    def history(self, period: str = stats.TODAY, show_all: bool = False) -> List[Session]:
        limit = None if show_all else self.config.history_page_size
        return stats.history(self.state.sessions, period, self.now(), self.tz, limit)

    # Import / export
    def export_bundle(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "exportedAt": to_iso(self.now()),
                "version": SCHEMA_VERSION,
                "tasks": [t.to_record() for t in self.state.tasks],
                "sessions": [s.to_record() for s in self.state.sessions],
                "settings": self.state.settings.to_record(),
            }

    def export_to_file(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.export_bundle(), indent=2), encoding="utf-8")
        LOGGER.info("Exported %s tasks and %s sessions to %s", len(self.state.tasks), len(self.state.sessions), path)
        return path

    def import_bundle(self, mode: str, data: Any) -> ImportResult:
        if mode not in IMPORT_MODES:
            raise InvalidInput(f"unknown import mode {mode!r}")
        tasks, sessions, settings = _parse_bundle(data)
        with self.lock:
            if mode == "replace":
                self.state.tasks = tasks
                self.state.sessions = sessions
                tasks_added, sessions_added = len(tasks), len(sessions)
            else:
                tasks_added = _append_new(self.state.tasks, tasks)
                sessions_added = _append_new(self.state.sessions, sessions)
            self.state.settings = self.state.settings.merged(settings)
            self.engine.replace_state(TimerState.fresh(self.state.settings))
            self._persist("tasks", "sessions", "settings")
            LOGGER.info("Imported (%s) %s tasks and %s sessions", mode, tasks_added, sessions_added)
            return ImportResult(mode, tasks_added, sessions_added)

    def import_from_file(self, path: Path, mode: str) -> ImportResult:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise MalformedImport(f"{path} is not valid JSON: {exc}") from exc
        return self.import_bundle(mode, data)

    def export_report(self, path: Optional[Path] = None) -> Path:
        """Write the session history and task breakdown to a spreadsheet."""
        exporter = self.exporter
        if exporter is None or path is not None:
            from reports.excel_export import ExcelExporter

            exporter = ExcelExporter(Path(path) if path is not None else self.config.resolved_export_path)
        all_time = stats.task_breakdown(self.state.sessions, self.config.breakdown_top_n) if self.state.sessions else []
        return exporter.export(list(self.state.sessions), all_time)

    def backup(self) -> Path:
        return self.store.backup()


def _parse_bundle(data: Any) -> tuple[List[Task], List[Session], Dict[str, Any]]:
    """Validate and parse an import payload without touching any state."""
    if not isinstance(data, dict):
        raise MalformedImport("import payload must be an object")
    for key in ("tasks", "sessions"):
        if key not in data:
            raise MalformedImport(f"import payload is missing {key!r}")
        if not isinstance(data[key], list):
            raise MalformedImport(f"{key!r} must be a list")
    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        raise MalformedImport("'settings' must be an object")
    try:
        tasks = [Task.from_record(r) for r in data["tasks"]]
        sessions = [Session.from_record(r) for r in data["sessions"]]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise MalformedImport(f"unreadable record: {exc!r}") from exc
    return tasks, sessions, settings


def _append_new(existing: list, incoming: list) -> int:
    seen = {item.id for item in existing}
    added = 0
    for item in incoming:
        if item.id in seen:
            continue
        seen.add(item.id)
        existing.append(item)
        added += 1
    return added
