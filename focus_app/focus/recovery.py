"""Startup reconciliation of a persisted running timer with the wall clock."""
from __future__ import annotations

import logging
import math

from .clock import Clock
from .timers import TimerEngine

LOGGER = logging.getLogger(__name__)

IDLE = "idle"
RESUMED = "resumed"
COMPLETED = "completed"


class RecoveryManager:
    """Runs once, after the state is loaded and before anything observes the timer.

    A gap spanning several intervals still produces a single transition: the
    interval that was running completes once and the next mode starts fresh.
    """

    def __init__(self, engine: TimerEngine, clock: Clock) -> None:
        self.engine = engine
        self.clock = clock
        self.outcome: str | None = None

    def recover(self) -> str:
        if self.outcome is not None:
            return self.outcome
        with self.engine.lock:
            timer = self.engine.timer
            if not timer.is_running or timer.start_time is None:
                self.outcome = IDLE
                return self.outcome
            # A clock that moved backwards counts as no time passing.
            elapsed = max(0, math.floor(self.clock.now() - timer.start_time))
            timer.remaining_time = max(0, timer.remaining_time - elapsed)
            timer.is_running = False
            timer.start_time = None
            if timer.remaining_time > 0:
                LOGGER.info("Resuming %s after %ss away, %ss left", timer.mode.value, elapsed, timer.remaining_time)
                self.engine.start()
                self.outcome = RESUMED
            else:
                LOGGER.info("%s interval ran out %ss ago; completing it", timer.mode.value, elapsed)
                self.engine.complete(skipped=False)
                self.outcome = COMPLETED
        return self.outcome
