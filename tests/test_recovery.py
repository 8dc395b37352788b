from datetime import timezone

from conftest import make_config
from focus_app.focus import recovery
from focus_app.focus.controllers import AppController
from focus_app.focus.events import ModeChanged
from focus_app.focus.models import AppState, Settings, TimerMode


def _saved_running_state(store, clock, remaining, started_ago, mode=TimerMode.WORK):
    state = AppState.initial(Settings())
    timer = state.timer
    timer.mode = mode
    timer.total_time = state.settings.duration_for(mode)
    timer.remaining_time = remaining
    timer.is_running = True
    timer.start_time = clock.now() - started_ago
    store.save_state(state)


def _controller(tmp_path, store, clock, scheduler, bus):
    return AppController(store, make_config(tmp_path), clock=clock, scheduler=scheduler, bus=bus, tz=timezone.utc)


def test_gap_longer_than_interval_completes_once(tmp_path, store, clock, scheduler, bus):
    _saved_running_state(store, clock, remaining=300, started_ago=420)
    app = _controller(tmp_path, store, clock, scheduler, bus)
    transitions = []
    bus.subscribe(ModeChanged, transitions.append)

    assert app.startup() == recovery.COMPLETED
    assert len(transitions) == 1
    assert app.timer.mode is TimerMode.SHORT_BREAK
    assert app.timer.is_running is False
    assert len(app.state.sessions) == 1
    assert app.state.sessions[0].duration == 25 * 60


def test_gap_spanning_many_intervals_is_still_one_transition(tmp_path, store, clock, scheduler, bus):
    _saved_running_state(store, clock, remaining=1500, started_ago=3 * 3600)
    app = _controller(tmp_path, store, clock, scheduler, bus)
    app.startup()
    assert app.timer.mode is TimerMode.SHORT_BREAK
    assert app.timer.remaining_time == 5 * 60
    assert len(app.state.sessions) == 1


def test_short_gap_resumes_with_fresh_start_time(tmp_path, store, clock, scheduler, bus):
    _saved_running_state(store, clock, remaining=300, started_ago=100.7)
    app = _controller(tmp_path, store, clock, scheduler, bus)
    assert app.startup() == recovery.RESUMED
    assert app.timer.is_running is True
    assert app.timer.remaining_time == 200
    assert app.timer.start_time == clock.now()
    scheduler.advance(1)
    assert app.timer.remaining_time == 199


def test_break_recovery_returns_to_work_without_session(tmp_path, store, clock, scheduler, bus):
    _saved_running_state(store, clock, remaining=60, started_ago=600, mode=TimerMode.LONG_BREAK)
    app = _controller(tmp_path, store, clock, scheduler, bus)
    app.startup()
    assert app.timer.mode is TimerMode.WORK
    assert app.timer.cycle_station == 1
    assert app.state.sessions == []


def test_idle_timer_is_left_alone(tmp_path, store, clock, scheduler, bus):
    app = _controller(tmp_path, store, clock, scheduler, bus)
    before = app.timer.remaining_time
    clock.advance(10_000)
    assert app.startup() == recovery.IDLE
    assert app.timer.remaining_time == before


def test_clock_moving_backwards_counts_as_no_gap(tmp_path, store, clock, scheduler, bus):
    _saved_running_state(store, clock, remaining=300, started_ago=-50)
    app = _controller(tmp_path, store, clock, scheduler, bus)
    app.startup()
    assert app.timer.remaining_time == 300


def test_recovery_runs_only_once(tmp_path, store, clock, scheduler, bus):
    _saved_running_state(store, clock, remaining=300, started_ago=420)
    app = _controller(tmp_path, store, clock, scheduler, bus)
    app.startup()
    app.startup()
    assert len(app.state.sessions) == 1
