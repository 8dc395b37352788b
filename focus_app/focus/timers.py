"""Work/break interval state machine."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .clock import Clock
from .events import EventBus, ModeChanged, SessionCompleted, TimerStateChanged, TimerTicked
from .ledger import SessionLedger
from .models import AppState, TimerMode, TimerState
from .scheduler import TickScheduler

LOGGER = logging.getLogger(__name__)

PersistCallback = Callable[..., None]


class TimerEngine:
    """Pomodoro-style timer over the shared AppState.

    States are ``{work, shortBreak, longBreak} x {idle, running}``. Every
    public operation runs under ``lock`` and cancels the tick source before it
    mutates state; a tick carries the token it was started with and is dropped
    if the token has moved on, so no stale tick can land after a cancel.
    """

    def __init__(
        self,
        state: AppState,
        ledger: SessionLedger,
        clock: Clock,
        scheduler: TickScheduler,
        bus: EventBus,
        persist: Optional[PersistCallback] = None,
        lock: Optional[threading.RLock] = None,
        auto_start_delay: float = 0.0,
    ) -> None:
        self.state = state
        self.ledger = ledger
        self.clock = clock
        self.scheduler = scheduler
        self.bus = bus
        self.persist = persist or (lambda *_keys: None)
        self.lock = lock or threading.RLock()
        self.auto_start_delay = auto_start_delay
        self._tick_token = 0
        self._transition = 0

    @property
    def timer(self) -> TimerState:
        return self.state.timer

    @property
    def is_running(self) -> bool:
        return self.state.timer.is_running

    # Commands
    def start(self) -> None:
        with self.lock:
            timer = self.timer
            if timer.is_running:
                return
            if timer.remaining_time <= 0:
                # Nothing left to count down; finishing is the only move.
                self.complete(skipped=False)
                return
            timer.is_running = True
            timer.start_time = self.clock.now()
            self._tick_token += 1
            token = self._tick_token
            self.scheduler.start(lambda: self._on_tick(token))
            LOGGER.debug("Timer started in %s with %ss left", timer.mode.value, timer.remaining_time)
            self.persist("timer")
            self.bus.publish(TimerStateChanged(timer))

    def pause(self) -> None:
        with self.lock:
            if not self.timer.is_running:
                return
            self._halt()
            LOGGER.debug("Timer paused with %ss left", self.timer.remaining_time)
            self.persist("timer")
            self.bus.publish(TimerStateChanged(self.timer))

    def reset(self) -> None:
        with self.lock:
            self._halt()
            self._apply_mode(self.timer.mode)
            self.persist("timer")
            self.bus.publish(TimerStateChanged(self.timer))

    def skip(self) -> None:
        """Jump to the next mode without recording anything."""
        with self.lock:
            LOGGER.info("Skipping %s interval", self.timer.mode.value)
            self.complete(skipped=True)

    def switch_mode(self, mode: TimerMode) -> bool:
        """Reset into ``mode``. Any running interval is discarded without credit.

        Returns False when already in ``mode``.
        """
        mode = TimerMode.parse(mode)
        with self.lock:
            if self.timer.mode is mode:
                return False
            self._halt()
            self._apply_mode(mode)
            LOGGER.info("Switched to %s", mode.value)
            self.persist("timer")
            self.bus.publish(ModeChanged(mode, self.timer.cycle_station))
            self.bus.publish(TimerStateChanged(self.timer))
            return True

    def tick(self) -> None:
        with self.lock:
            timer = self.timer
            if not timer.is_running:
                return
            timer.remaining_time = max(0, timer.remaining_time - 1)
            # The persisted remaining time is valid as of now.
            timer.start_time = self.clock.now()
            self.bus.publish(TimerTicked(timer.remaining_time, timer.total_time, timer.mode))
            if timer.remaining_time <= 0:
                self.complete(skipped=False)
            else:
                self.persist("timer")

    def complete(self, skipped: bool = False) -> None:
        with self.lock:
            self._halt()
            timer = self.timer
            counted = False
            if not skipped and timer.mode is TimerMode.WORK and timer.elapsed > 0:
                session = self.ledger.record(timer.active_task_id, timer.elapsed, self.clock.now_datetime())
                counted = True
                self.persist("tasks", "sessions")
                self.bus.publish(SessionCompleted(session))
            self.advance(counted=counted)

    def advance(self, counted: bool = False) -> TimerMode:
        """Move to the next mode; ``counted`` marks a credited work interval."""
        with self.lock:
            timer = self.timer
            previous = timer.mode
            if previous is TimerMode.WORK:
                limit = self.state.settings.sessions_before_long_break
                next_mode = TimerMode.LONG_BREAK if timer.cycle_station >= limit else TimerMode.SHORT_BREAK
                if counted:
                    timer.cycle_station += 1
            elif previous is TimerMode.SHORT_BREAK:
                next_mode = TimerMode.WORK
            else:
                next_mode = TimerMode.WORK
                timer.cycle_station = 1
            self._halt()
            self._apply_mode(next_mode)
            LOGGER.info("Advanced %s -> %s (station %s)", previous.value, next_mode.value, timer.cycle_station)
            self.persist("timer")
            self.bus.publish(ModeChanged(next_mode, timer.cycle_station))
            self.bus.publish(TimerStateChanged(timer))
            if self.state.settings.auto_starts(next_mode):
                self._schedule_auto_start()
            return next_mode

    # Task binding
    def bind_and_start(self, task_id: str) -> None:
        """Toggle the bound task, or bind a new one and start a fresh work interval."""
        with self.lock:
            timer = self.timer
            if timer.active_task_id == task_id:
                if timer.is_running:
                    self.pause()
                else:
                    self.start()
                return
            previous_mode = timer.mode
            self._halt()
            timer.active_task_id = task_id
            self._apply_mode(TimerMode.WORK)
            if previous_mode is not TimerMode.WORK:
                self.bus.publish(ModeChanged(TimerMode.WORK, timer.cycle_station))
            self.start()

    def release_task(self, task_id: str) -> bool:
        """Unbind ``task_id`` if it is bound, pausing a running timer."""
        with self.lock:
            if self.timer.active_task_id != task_id:
                return False
            self.timer.active_task_id = None
            if self.timer.is_running:
                self._halt()
            self.persist("timer")
            self.bus.publish(TimerStateChanged(self.timer))
            return True

    def apply_settings(self) -> None:
        """Re-derive interval lengths after the settings changed."""
        with self.lock:
            timer = self.timer
            if timer.is_running:
                # Time already worked stays credited; only the finish line moves.
                elapsed = timer.elapsed
                new_total = self.state.settings.duration_for(timer.mode)
                if new_total <= elapsed:
                    LOGGER.info("New %s length already reached; completing", timer.mode.value)
                    self.complete(skipped=False)
                    return
                timer.total_time = new_total
                timer.remaining_time = new_total - elapsed
            else:
                self._apply_mode(timer.mode)
            self.persist("timer")
            self.bus.publish(TimerStateChanged(timer))

    def replace_state(self, timer: TimerState) -> None:
        with self.lock:
            self._halt()
            self.state.timer = timer
            self.persist("timer")
            self.bus.publish(TimerStateChanged(timer))

    def shutdown(self) -> None:
        with self.lock:
            self._tick_token += 1
            self._transition += 1
            self.scheduler.shutdown()

    # Internals
    def _on_tick(self, token: int) -> None:
        with self.lock:
            if token != self._tick_token:
                return
            self.tick()

    def _halt(self) -> None:
        self._tick_token += 1
        self.scheduler.cancel()
        self.timer.is_running = False
        self.timer.start_time = None

    def _apply_mode(self, mode: TimerMode) -> None:
        self._transition += 1
        timer = self.timer
        timer.mode = mode
        timer.is_running = False
        timer.total_time = self.state.settings.duration_for(mode)
        timer.remaining_time = timer.total_time

    def _schedule_auto_start(self) -> None:
        transition = self._transition
        if self.auto_start_delay <= 0:
            self.start()
            return

        def _auto_start() -> None:
            with self.lock:
                # Dropped if the user moved the timer in the meantime.
                if transition == self._transition and not self.timer.is_running:
                    self.start()

        self.scheduler.call_later(self.auto_start_delay, _auto_start)
