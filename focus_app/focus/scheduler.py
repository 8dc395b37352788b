"""Cancellable tick sources for the timer engine."""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from .clock import ManualClock

LOGGER = logging.getLogger(__name__)

TICK_SECONDS = 1.0


class TickScheduler(ABC):
    """A single recurring tick plus one-shot delayed calls.

    ``start`` replaces any running tick. ``cancel`` stops it; callers that need
    stale-tick protection must also guard their callback (see TimerEngine).
    """

    @abstractmethod
    def start(self, callback: Callable[[], None]) -> None:
        """Begin calling ``callback`` once per tick."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the recurring tick."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` once after ``delay`` seconds."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """Whether a recurring tick is scheduled."""

    def shutdown(self) -> None:
        self.cancel()


class ThreadTickScheduler(TickScheduler):
    """Ticks from a daemon thread once per ``interval`` seconds."""

    def __init__(self, interval: float = TICK_SECONDS) -> None:
        self.interval = interval
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._timers: List[threading.Timer] = []

    @property
    def active(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def _run_loop(self, stop_event: threading.Event, callback: Callable[[], None]) -> None:
        while not stop_event.wait(self.interval):
            try:
                callback()
            except Exception:  # pragma: no cover
                LOGGER.exception("Timer tick failed")

    def start(self, callback: Callable[[], None]) -> None:
        self.cancel()
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(target=self._run_loop, args=(stop_event, callback), daemon=True)
        self._thread.start()
        LOGGER.debug("Tick thread started")

    def cancel(self) -> None:
        # No join: the caller may hold the lock an in-flight tick is waiting on.
        # That tick is dropped by the caller's token check and the loop exits.
        if self._stop_event:
            self._stop_event.set()
            LOGGER.debug("Tick thread stopped")
        self._thread = None
        self._stop_event = None

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        self._timers = [t for t in self._timers if t.is_alive()]
        self._timers.append(timer)
        timer.start()

    def shutdown(self) -> None:
        self.cancel()
        for timer in self._timers:
            timer.cancel()
        self._timers = []


class ManualTickScheduler(TickScheduler):
    """Deterministic scheduler: nothing happens until ``advance`` is called.

    When given a ManualClock, each tick moves the clock forward one second so
    wall-clock timestamps stay consistent with tick counts.
    """

    def __init__(self, clock: Optional[ManualClock] = None) -> None:
        self.clock = clock
        self.elapsed = 0.0
        self._callback: Optional[Callable[[], None]] = None
        self._pending: List[Tuple[float, Callable[[], None]]] = []

    @property
    def active(self) -> bool:
        return self._callback is not None

    def start(self, callback: Callable[[], None]) -> None:
        self._callback = callback

    def cancel(self) -> None:
        self._callback = None

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        self._pending.append((self.elapsed + delay, callback))

    @property
    def pending(self) -> int:
        return len(self._pending)

    def advance(self, seconds: int = 1) -> None:
        for _ in range(int(seconds)):
            self.elapsed += TICK_SECONDS
            if self.clock is not None:
                self.clock.advance(TICK_SECONDS)
            callback = self._callback
            if callback is not None:
                callback()
            self._run_due()

    def flush(self) -> None:
        """Run every delayed call now, regardless of its due time."""
        pending, self._pending = self._pending, []
        for _due, callback in pending:
            callback()

    def _run_due(self) -> None:
        due = [item for item in self._pending if item[0] <= self.elapsed]
        if not due:
            return
        self._pending = [item for item in self._pending if item[0] > self.elapsed]
        for _due, callback in due:
            callback()

    def shutdown(self) -> None:
        self.cancel()
        self._pending = []
