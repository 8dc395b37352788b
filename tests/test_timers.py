import random

from focus_app.focus.events import ModeChanged, SessionCompleted, TimerTicked
from focus_app.focus.models import TimerMode


def test_start_pause_keeps_remaining(controller, scheduler, clock):
    controller.start()
    assert controller.timer.is_running
    assert controller.timer.start_time == clock.now()
    scheduler.advance(10)
    assert controller.timer.remaining_time == 50
    controller.pause()
    scheduler.advance(5)
    assert controller.timer.is_running is False
    assert controller.timer.remaining_time == 50


def test_start_and_pause_are_idempotent(controller, scheduler):
    controller.start()
    controller.start()
    scheduler.advance(3)
    assert controller.timer.remaining_time == 57
    controller.pause()
    controller.pause()
    assert controller.timer.remaining_time == 57


def test_reset_restores_full_interval(controller, scheduler):
    controller.start()
    scheduler.advance(20)
    controller.reset()
    assert controller.timer.is_running is False
    assert controller.timer.remaining_time == controller.timer.total_time == 60
    assert controller.timer.mode is TimerMode.WORK


def test_remaining_stays_in_bounds_for_random_commands(controller, scheduler):
    rng = random.Random(7)
    actions = [controller.start, controller.pause, controller.reset, controller.skip, lambda: scheduler.advance(rng.randint(1, 90))]
    for _ in range(300):
        rng.choice(actions)()
        timer = controller.timer
        assert 0 <= timer.remaining_time <= timer.total_time
        assert timer.total_time == controller.settings.duration_for(timer.mode)
        if timer.is_running:
            assert timer.start_time is not None


def test_natural_completion_records_session(controller, scheduler, bus):
    completed = []
    bus.subscribe(SessionCompleted, lambda e: completed.append(e.session))
    task = controller.add_task("Write")
    controller.bind_task_and_start(task.id)
    scheduler.advance(60)

    assert len(completed) == 1
    assert completed[0].duration == 60
    assert completed[0].task_id == task.id
    assert completed[0].timestamp == controller.now()
    assert task.total_time == 60
    assert controller.timer.mode is TimerMode.SHORT_BREAK
    assert controller.timer.cycle_station == 2
    assert controller.timer.is_running is False


def test_untracked_work_still_advances(controller, scheduler):
    controller.start()
    scheduler.advance(60)
    assert controller.state.sessions[0].task_id is None
    assert controller.timer.mode is TimerMode.SHORT_BREAK


def test_breaks_are_never_logged(controller, scheduler):
    controller.switch_mode(TimerMode.SHORT_BREAK)
    controller.start()
    scheduler.advance(60)
    assert controller.state.sessions == []
    assert controller.timer.mode is TimerMode.WORK


def _finish_interval(controller, scheduler):
    controller.start()
    scheduler.advance(controller.timer.remaining_time)


def test_long_break_after_configured_work_count(controller, scheduler, bus):
    modes = []
    bus.subscribe(ModeChanged, lambda e: modes.append((e.mode, e.cycle_station)))
    # sessionsBeforeLongBreak is 2 in the fixture.
    for _ in range(4):
        _finish_interval(controller, scheduler)
    assert [m for m, _ in modes] == [
        TimerMode.SHORT_BREAK,
        TimerMode.WORK,
        TimerMode.LONG_BREAK,
        TimerMode.WORK,
    ]
    assert modes[-1][1] == 1
    assert len(controller.state.sessions) == 2


def test_skip_never_records_or_credits(controller, scheduler):
    task = controller.add_task("Write")
    controller.bind_task_and_start(task.id)
    scheduler.advance(59)
    controller.skip()
    assert controller.state.sessions == []
    assert task.total_time == 0
    assert controller.timer.mode is TimerMode.SHORT_BREAK
    assert controller.timer.cycle_station == 1


def test_skip_at_last_station_goes_to_long_break(controller, scheduler):
    _finish_interval(controller, scheduler)
    _finish_interval(controller, scheduler)
    assert controller.timer.cycle_station == 2
    controller.skip()
    assert controller.timer.mode is TimerMode.LONG_BREAK
    controller.skip()
    assert controller.timer.mode is TimerMode.WORK
    assert controller.timer.cycle_station == 1


def test_switch_mode_discards_partial_work(controller, scheduler):
    task = controller.add_task("Write")
    controller.bind_task_and_start(task.id)
    scheduler.advance(45)
    assert controller.switch_mode("longBreak") is True
    assert controller.state.sessions == []
    assert task.total_time == 0
    assert controller.timer.mode is TimerMode.LONG_BREAK
    assert controller.timer.remaining_time == 120
    assert controller.timer.cycle_station == 1
    assert controller.timer.is_running is False


def test_switch_mode_honours_declined_confirmation(controller, scheduler):
    controller.start()
    scheduler.advance(5)
    assert controller.switch_mode("shortBreak", confirm=lambda _msg: False) is False
    assert controller.timer.mode is TimerMode.WORK
    assert controller.timer.is_running is True


def test_switch_to_current_mode_is_noop(controller, scheduler):
    controller.start()
    scheduler.advance(5)
    assert controller.switch_mode("work") is False
    assert controller.timer.remaining_time == 55


def test_stale_tick_after_pause_is_ignored(controller, scheduler):
    controller.start()
    stale = scheduler._callback
    controller.pause()
    stale()
    stale()
    assert controller.timer.remaining_time == 60


def test_ticks_publish_events(controller, scheduler, bus):
    ticks = []
    bus.subscribe(TimerTicked, ticks.append)
    controller.start()
    scheduler.advance(3)
    assert [t.remaining for t in ticks] == [59, 58, 57]
    assert all(t.total == 60 and t.mode is TimerMode.WORK for t in ticks)


def test_auto_start_break_immediately(controller, scheduler):
    controller.save_settings({"autoStartBreaks": True})
    _finish_interval(controller, scheduler)
    assert controller.timer.mode is TimerMode.SHORT_BREAK
    assert controller.timer.is_running is True


def test_auto_start_after_delay(controller, scheduler):
    controller.engine.auto_start_delay = 1.0
    controller.save_settings({"autoStartBreaks": True})
    _finish_interval(controller, scheduler)
    assert controller.timer.is_running is False
    assert scheduler.pending == 1
    scheduler.advance(1)
    assert controller.timer.is_running is True
    assert controller.timer.remaining_time == 60


def test_delayed_auto_start_dropped_after_manual_switch(controller, scheduler):
    controller.engine.auto_start_delay = 1.0
    controller.save_settings({"autoStartBreaks": True})
    _finish_interval(controller, scheduler)
    controller.switch_mode("work")
    scheduler.advance(1)
    assert controller.timer.is_running is False


def test_bind_task_toggles_when_already_bound(controller, scheduler):
    task = controller.add_task("Write")
    controller.bind_task_and_start(task.id)
    scheduler.advance(10)
    controller.bind_task_and_start(task.id)
    assert controller.timer.is_running is False
    assert controller.timer.remaining_time == 50
    controller.bind_task_and_start(task.id)
    assert controller.timer.is_running is True


def test_binding_another_task_restarts_work(controller, scheduler):
    first = controller.add_task("First")
    second = controller.add_task("Second")
    controller.bind_task_and_start(first.id)
    scheduler.advance(30)
    controller.bind_task_and_start(second.id)
    assert controller.timer.active_task_id == second.id
    assert controller.timer.remaining_time == 60
    assert controller.timer.is_running is True
    assert controller.bind_task_and_start("missing") is False


def test_delete_bound_task_pauses_timer(controller, scheduler):
    task = controller.add_task("Write")
    controller.bind_task_and_start(task.id)
    scheduler.advance(10)
    assert controller.delete_task(task.id) is True
    assert controller.timer.active_task_id is None
    assert controller.timer.is_running is False
    assert controller.timer.remaining_time == 50


def test_completing_bound_task_releases_it(controller, scheduler):
    task = controller.add_task("Write")
    controller.bind_task_and_start(task.id)
    controller.toggle_task_complete(task.id)
    assert controller.timer.active_task_id is None
    assert controller.timer.is_running is False
