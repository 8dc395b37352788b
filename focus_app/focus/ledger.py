"""Task registry and session ledger.

Both operate on the shared AppState; neither persists anything itself.
Persisting after each mutation is the controller's job.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from .clock import Clock
from .errors import InvalidInput, NotFound
from .models import DEFAULT_COLOR, PALETTE, UNTRACKED_NAME, AppState, Session, Task, new_id

LOGGER = logging.getLogger(__name__)


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInput("task name must not be empty")
    return cleaned


def _check_color(color: Optional[str]) -> str:
    if color is None:
        return DEFAULT_COLOR
    if color not in PALETTE:
        raise InvalidInput(f"color {color!r} is not in the palette")
    return color


class TaskRegistry:
    def __init__(self, state: AppState, clock: Clock) -> None:
        self.state = state
        self.clock = clock

    def ordered(self) -> List[Task]:
        """Active tasks newest first, then completed tasks newest first."""
        newest_first = sorted(self.state.tasks, key=lambda t: t.created_at, reverse=True)
        return [t for t in newest_first if not t.completed] + [t for t in newest_first if t.completed]

    def find(self, task_id: Optional[str]) -> Optional[Task]:
        if task_id is None:
            return None
        for task in self.state.tasks:
            if task.id == task_id:
                return task
        return None

    def get(self, task_id: str) -> Task:
        task = self.find(task_id)
        if task is None:
            raise NotFound("task", task_id)
        return task

    def add(self, name: str, color: Optional[str] = None) -> Task:
        task = Task(
            id=new_id(),
            name=_clean_name(name),
            color=_check_color(color),
            created_at=self.clock.now_datetime(),
        )
        self.state.tasks.append(task)
        LOGGER.info("Created task %s", task.name)
        return task

    def edit(self, task_id: str, name: str, color: Optional[str] = None) -> Task:
        """Rename/recolour a task and every session recorded against it."""
        task = self.get(task_id)
        cleaned = _clean_name(name)
        new_color = _check_color(color) if color is not None else task.color
        task.name = cleaned
        task.color = new_color
        touched = 0
        for session in self.state.sessions:
            if session.task_id == task.id:
                session.task_name = cleaned
                session.task_color = new_color
                touched += 1
        LOGGER.info("Updated task %s (%s sessions relabelled)", task_id, touched)
        return task

    def toggle_complete(self, task_id: str) -> Task:
        task = self.get(task_id)
        task.completed = not task.completed
        LOGGER.info("Task %s marked %s", task_id, "completed" if task.completed else "active")
        return task

    def delete(self, task_id: str) -> Task:
        # Sessions keep their snapshot and become orphaned.
        task = self.get(task_id)
        self.state.tasks = [t for t in self.state.tasks if t.id != task_id]
        LOGGER.info("Deleted task %s", task_id)
        return task

    def adjust_time(self, task_id: Optional[str], delta: int) -> Optional[Task]:
        """Add ``delta`` seconds to a task's total, floored at zero.

        Returns the task, or None when the id does not resolve.
        """
        task = self.find(task_id)
        if task is None:
            return None
        task.total_time = max(0, task.total_time + delta)
        return task


class SessionLedger:
    def __init__(self, state: AppState, tasks: TaskRegistry) -> None:
        self.state = state
        self.tasks = tasks

    @property
    def sessions(self) -> List[Session]:
        return self.state.sessions

    def find(self, session_id: str) -> Optional[Session]:
        for session in self.state.sessions:
            if session.id == session_id:
                return session
        return None

    def get(self, session_id: str) -> Session:
        session = self.find(session_id)
        if session is None:
            raise NotFound("session", session_id)
        return session

    def record(self, task_id: Optional[str], duration: int, timestamp: datetime) -> Session:
        if duration <= 0:
            raise InvalidInput("session duration must be positive")
        task = self.tasks.find(task_id)
        session = Session(
            id=new_id(),
            task_id=task.id if task else None,
            task_name=task.name if task else UNTRACKED_NAME,
            task_color=task.color if task else DEFAULT_COLOR,
            duration=int(duration),
            timestamp=timestamp,
        )
        self.state.sessions.append(session)
        if task is not None:
            task.total_time += session.duration
        LOGGER.info("Recorded %ss session for %s", session.duration, session.task_name)
        return session

    def edit(self, session_id: str, new_duration: int) -> Session:
        """Change a session's duration and move its task's total by the same delta."""
        if new_duration is None or int(new_duration) <= 0:
            raise InvalidInput("session duration must be positive")
        session = self.get(session_id)
        delta = int(new_duration) - session.duration
        session.duration = int(new_duration)
        self.tasks.adjust_time(session.task_id, delta)
        LOGGER.info("Edited session %s by %+ds", session_id, delta)
        return session

    def delete(self, session_id: str) -> Session:
        session = self.get(session_id)
        self.state.sessions = [s for s in self.state.sessions if s.id != session_id]
        self.tasks.adjust_time(session.task_id, -session.duration)
        LOGGER.info("Deleted session %s", session_id)
        return session

    def clear(self) -> int:
        count = len(self.state.sessions)
        self.state.sessions = []
        LOGGER.info("Cleared %s sessions", count)
        return count
