from datetime import datetime, timedelta, timezone

import pytest

from focus_app.focus import stats
from focus_app.focus.models import Session, new_id

UTC = timezone.utc
NOW = datetime(2024, 5, 10, 12, 0, tzinfo=UTC)


def _session(name, minutes, days_ago=0, hour=9, task_id=None):
    when = (NOW - timedelta(days=days_ago)).replace(hour=hour)
    return Session(new_id(), task_id, name, "#58a6ff", minutes * 60, when)


def test_streak_today_and_yesterday():
    sessions = [_session("A", 25), _session("A", 25, days_ago=1)]
    assert stats.streak(sessions, NOW, UTC) == 2


def test_streak_broken_by_missed_day():
    sessions = [_session("A", 25), _session("A", 25, days_ago=1), _session("A", 25, days_ago=3)]
    assert stats.streak(sessions, NOW, UTC) == 2


def test_streak_may_end_yesterday():
    sessions = [_session("A", 25, days_ago=1), _session("A", 25, days_ago=2), _session("B", 5, days_ago=2)]
    assert stats.streak(sessions, NOW, UTC) == 2


def test_streak_zero_when_last_session_is_old():
    assert stats.streak([_session("A", 25, days_ago=2)], NOW, UTC) == 0
    assert stats.streak([], NOW, UTC) == 0


def test_streak_uses_local_calendar_days():
    tz = timezone(timedelta(hours=-5))
    # 02:00 UTC on the 10th is still the 9th at UTC-5.
    late = Session(new_id(), None, "A", "#58a6ff", 60, datetime(2024, 5, 10, 2, 0, tzinfo=UTC))
    assert stats.local_date(late.timestamp, tz).day == 9
    assert stats.streak([late], NOW, tz) == 1


def test_period_totals():
    sessions = [
        _session("A", 25),
        _session("A", 10, days_ago=1),
        _session("B", 30, days_ago=6),
        _session("B", 50, days_ago=30),
    ]
    totals = stats.period_totals(sessions, NOW, UTC)
    assert totals.today == 25 * 60
    assert totals.week == (25 + 10 + 30) * 60
    assert totals.all_time == (25 + 10 + 30 + 50) * 60


def test_today_starts_at_local_midnight():
    just_before = Session(new_id(), None, "A", "#58a6ff", 60, datetime(2024, 5, 9, 23, 59, tzinfo=UTC))
    just_after = Session(new_id(), None, "A", "#58a6ff", 60, datetime(2024, 5, 10, 0, 0, tzinfo=UTC))
    assert stats.filter_sessions([just_before, just_after], stats.TODAY, NOW, UTC) == [just_after]


def test_breakdown_folds_tail_into_others():
    sessions = [_session(name, minutes) for name, minutes in
                [("A", 50), ("B", 40), ("C", 30), ("D", 20), ("E", 10), ("F", 5), ("G", 5), ("A", 10)]]
    entries = stats.task_breakdown(sessions, top_n=5)
    assert [e.name for e in entries] == ["A", "B", "C", "D", "E", stats.OTHERS_LABEL]
    assert entries[0].seconds == 60 * 60
    assert entries[0].sessions == 2
    assert entries[-1].seconds == 10 * 60
    assert entries[-1].sessions == 2
    assert sum(e.seconds for e in entries) == sum(s.duration for s in sessions)


def test_breakdown_without_tail_has_no_others():
    entries = stats.task_breakdown([_session("A", 10), _session("B", 20)], top_n=5)
    assert [e.name for e in entries] == ["B", "A"]
    assert entries[0].percent == pytest.approx(66.7)


def test_breakdown_groups_orphans_by_recorded_name():
    sessions = [_session("Gone", 25, task_id="deleted"), _session("Gone", 25, task_id="deleted")]
    entries = stats.task_breakdown(sessions)
    assert len(entries) == 1
    assert entries[0].name == "Gone"
    assert entries[0].seconds == 50 * 60


def test_history_is_newest_first_and_limited():
    sessions = [_session("A", 5, hour=h) for h in (8, 9, 10, 11, 7)]
    shown = stats.history(sessions, stats.TODAY, NOW, UTC, limit=4)
    assert [s.timestamp.hour for s in shown] == [11, 10, 9, 8]


def test_unknown_period_rejected():
    with pytest.raises(ValueError):
        stats.filter_sessions([], "month", NOW, UTC)


def test_formatting():
    assert stats.format_clock(1500) == "25:00"
    assert stats.format_clock(65) == "1:05"
    assert stats.format_task_total(3 * 3600 + 7 * 60) == "03:07"
    assert stats.format_focus_time(3900) == "1h 5m"
    assert stats.format_focus_time(2700) == "45m"
