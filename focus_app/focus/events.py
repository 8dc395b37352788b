"""Typed events published by the core and a minimal synchronous bus."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Type

from .models import Session, Task, TimerMode, TimerState

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimerTicked:
    remaining: int
    total: int
    mode: TimerMode


@dataclass(frozen=True)
class SessionCompleted:
    session: Session


@dataclass(frozen=True)
class ModeChanged:
    mode: TimerMode
    cycle_station: int


@dataclass(frozen=True)
class TimerStateChanged:
    state: TimerState


@dataclass(frozen=True)
class TasksChanged:
    tasks: List[Task]


@dataclass(frozen=True)
class SessionsChanged:
    sessions: List[Session]


@dataclass(frozen=True)
class PersistenceFailed:
    error: Exception


Handler = Callable[[object], None]


class EventBus:
    """Dispatches events synchronously, in subscription order."""

    def __init__(self) -> None:
        self._handlers: Dict[Type, List[Handler]] = {}

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: Type, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: object) -> None:
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
            except Exception:
                LOGGER.exception("Event handler failed for %s", type(event).__name__)
