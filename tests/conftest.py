import sys
from datetime import timezone
from pathlib import Path

import pytest

# Ensure the application packages are importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from focus_app.focus.clock import ManualClock  # noqa: E402
from focus_app.focus.controllers import AppConfig, AppController  # noqa: E402
from focus_app.focus.events import EventBus  # noqa: E402
from focus_app.focus.scheduler import ManualTickScheduler  # noqa: E402
from focus_app.focus.storage import Store  # noqa: E402

SHORT_SETTINGS = {
    "workDuration": 1,
    "shortBreakDuration": 1,
    "longBreakDuration": 2,
    "sessionsBeforeLongBreak": 2,
}


def make_config(tmp_path, **overrides) -> AppConfig:
    values = dict(
        data_path=str(tmp_path / "data.db"),
        export_path=str(tmp_path / "history.xlsx"),
        auto_start_delay_seconds=0.0,
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualTickScheduler(clock)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def store(tmp_path):
    return Store(tmp_path / "data.db")


@pytest.fixture
def controller(tmp_path, store, clock, scheduler, bus):
    app = AppController(store, make_config(tmp_path), clock=clock, scheduler=scheduler, bus=bus, tz=timezone.utc)
    app.save_settings(SHORT_SETTINGS)
    return app
