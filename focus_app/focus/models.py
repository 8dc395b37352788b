"""Data models for the focus timer."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

SCHEMA_VERSION = 1

DEFAULT_COLOR = "#58a6ff"
PALETTE = ("#58a6ff", "#3fb950", "#d29922", "#f85149", "#a371f7", "#79c0ff", "#56d364")
UNTRACKED_NAME = "Untracked"

MIN_SESSIONS_BEFORE_LONG_BREAK = 1
MAX_SESSIONS_BEFORE_LONG_BREAK = 10


def new_id() -> str:
    return uuid.uuid4().hex


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


def from_iso(value: Any) -> datetime:
    """Parse a stored timestamp, accepting the trailing ``Z`` of browser exports."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        # Epoch milliseconds were used by early exports.
        parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TimerMode(str, Enum):
    WORK = "work"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"

    @property
    def is_break(self) -> bool:
        return self is not TimerMode.WORK

    @classmethod
    def parse(cls, value: Any) -> "TimerMode":
        if isinstance(value, cls):
            return value
        return cls(str(value))


@dataclass
class Task:
    """A user-chosen goal that accumulates focused time."""

    id: str
    name: str
    color: str = DEFAULT_COLOR
    completed: bool = False
    total_time: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Task":
        created = record.get("createdAt")
        return cls(
            id=str(record["id"]),
            name=record.get("name") or "",
            color=record.get("color") or DEFAULT_COLOR,
            completed=bool(record.get("completed", False)),
            total_time=max(0, int(record.get("totalTime") or 0)),
            created_at=from_iso(created) if created else datetime.now(timezone.utc),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "completed": self.completed,
            "totalTime": self.total_time,
            "createdAt": to_iso(self.created_at),
        }


@dataclass
class Session:
    """A completed work interval.

    ``task_name`` and ``task_color`` are snapshots taken when the session is
    recorded, so the session stays displayable after its task is deleted.
    """

    id: str
    task_id: Optional[str]
    task_name: str
    task_color: str
    duration: int
    timestamp: datetime

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Session":
        task_id = record.get("taskId")
        duration = int(record.get("duration") or 0)
        if duration <= 0:
            raise ValueError(f"session {record.get('id')!r} has non-positive duration {duration}")
        return cls(
            id=str(record["id"]),
            task_id=str(task_id) if task_id not in (None, "") else None,
            task_name=record.get("taskName") or UNTRACKED_NAME,
            task_color=record.get("taskColor") or DEFAULT_COLOR,
            duration=duration,
            timestamp=from_iso(record["timestamp"]),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "taskId": self.task_id,
            "taskName": self.task_name,
            "taskColor": self.task_color,
            "duration": self.duration,
            "timestamp": to_iso(self.timestamp),
        }


def _clamp(value: Any, low: int, high: Optional[int], default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number < low:
        return low
    if high is not None and number > high:
        return high
    return number


@dataclass
class Settings:
    """User preferences. Durations are whole minutes."""

    work_duration: int = 25
    short_break_duration: int = 5
    long_break_duration: int = 15
    sessions_before_long_break: int = 4
    auto_start_breaks: bool = False
    auto_start_work: bool = False
    sound_volume: int = 70
    use_12_hour: bool = False

    _KEYS = {
        "workDuration": "work_duration",
        "shortBreakDuration": "short_break_duration",
        "longBreakDuration": "long_break_duration",
        "sessionsBeforeLongBreak": "sessions_before_long_break",
        "autoStartBreaks": "auto_start_breaks",
        "autoStartWork": "auto_start_work",
        "soundVolume": "sound_volume",
        "use12Hour": "use_12_hour",
    }

    def __post_init__(self) -> None:
        self.work_duration = _clamp(self.work_duration, 1, None, 25)
        self.short_break_duration = _clamp(self.short_break_duration, 1, None, 5)
        self.long_break_duration = _clamp(self.long_break_duration, 1, None, 15)
        self.sessions_before_long_break = _clamp(
            self.sessions_before_long_break,
            MIN_SESSIONS_BEFORE_LONG_BREAK,
            MAX_SESSIONS_BEFORE_LONG_BREAK,
            4,
        )
        self.sound_volume = _clamp(self.sound_volume, 0, 100, 70)
        self.auto_start_breaks = bool(self.auto_start_breaks)
        self.auto_start_work = bool(self.auto_start_work)
        self.use_12_hour = bool(self.use_12_hour)

    def duration_for(self, mode: TimerMode) -> int:
        """Configured length of ``mode`` in seconds."""
        if mode is TimerMode.WORK:
            return self.work_duration * 60
        if mode is TimerMode.SHORT_BREAK:
            return self.short_break_duration * 60
        return self.long_break_duration * 60

    def auto_starts(self, mode: TimerMode) -> bool:
        return self.auto_start_breaks if mode.is_break else self.auto_start_work

    def merged(self, overrides: Optional[Dict[str, Any]]) -> "Settings":
        """Shallow-merge a camelCase record over these settings."""
        record = self.to_record()
        for key, value in (overrides or {}).items():
            if key in self._KEYS:
                record[key] = value
        return Settings.from_record(record)

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> "Settings":
        record = record or {}
        kwargs = {attr: record[key] for key, attr in cls._KEYS.items() if key in record}
        return cls(**kwargs)

    def to_record(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for key, attr in self._KEYS.items()}


@dataclass
class TimerState:
    """The singleton interval state. ``start_time`` is epoch seconds."""

    mode: TimerMode = TimerMode.WORK
    is_running: bool = False
    remaining_time: int = 25 * 60
    total_time: int = 25 * 60
    cycle_station: int = 1
    start_time: Optional[float] = None
    active_task_id: Optional[str] = None

    @classmethod
    def fresh(cls, settings: Settings, active_task_id: Optional[str] = None) -> "TimerState":
        total = settings.duration_for(TimerMode.WORK)
        return cls(
            mode=TimerMode.WORK,
            remaining_time=total,
            total_time=total,
            active_task_id=active_task_id,
        )

    @property
    def elapsed(self) -> int:
        return self.total_time - self.remaining_time

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]], settings: Settings) -> "TimerState":
        if not record:
            return cls.fresh(settings)
        try:
            mode = TimerMode.parse(record.get("mode", TimerMode.WORK.value))
        except ValueError:
            mode = TimerMode.WORK
        # totalTime always follows the current settings.
        total = settings.duration_for(mode)
        remaining = _clamp(record.get("remainingTime", total), 0, total, total)
        start_time = record.get("startTime")
        if start_time is not None:
            start_time = float(start_time)
            # Browser-era records stored milliseconds.
            if start_time > 1e11:
                start_time /= 1000.0
        is_running = bool(record.get("isRunning", False)) and start_time is not None
        active = record.get("activeTaskId")
        return cls(
            mode=mode,
            is_running=is_running,
            remaining_time=remaining,
            total_time=total,
            cycle_station=_clamp(record.get("cycleStation") or 1, 1, None, 1),
            start_time=start_time,
            active_task_id=str(active) if active not in (None, "") else None,
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "isRunning": self.is_running,
            "remainingTime": self.remaining_time,
            "totalTime": self.total_time,
            "cycleStation": self.cycle_station,
            "startTime": self.start_time,
            "activeTaskId": self.active_task_id,
        }


@dataclass
class AppState:
    """Everything that is persisted, threaded explicitly through the core."""

    tasks: List[Task] = field(default_factory=list)
    sessions: List[Session] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)
    timer: TimerState = field(default_factory=TimerState)

    @classmethod
    def initial(cls, settings: Optional[Settings] = None) -> "AppState":
        settings = settings or Settings()
        return cls(settings=settings, timer=TimerState.fresh(settings))
