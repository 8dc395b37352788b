"""Focus timer core: timer state machine, persistence, recovery and statistics."""

__version__ = "1.0.0"
