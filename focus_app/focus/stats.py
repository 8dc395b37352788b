"""Read-side statistics over the session history.

Everything here is a pure function of its arguments. Day boundaries are local
calendar days in ``tz``; ``tz=None`` means the machine's local zone.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence

from .models import Session

TODAY = "today"
WEEK = "week"
ALL = "all"
PERIODS = (TODAY, WEEK, ALL)

OTHERS_LABEL = "Others"
OTHERS_COLOR = "#8b949e"


@dataclass
class PeriodTotals:
    today: int
    week: int
    all_time: int


@dataclass
class BreakdownEntry:
    name: str
    color: str
    seconds: int
    percent: float
    sessions: int = 0


@dataclass
class StatsSummary:
    today_seconds: int
    today_sessions: int
    streak: int


def _local(moment: datetime, tz: Optional[tzinfo]) -> datetime:
    return moment.astimezone(tz) if tz is not None else moment.astimezone()


def local_date(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    return _local(moment, tz).date()


def period_start(period: str, now: datetime, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Inclusive lower bound of ``period``; None for all time."""
    if period not in PERIODS:
        raise ValueError(f"unknown period {period!r}")
    if period == ALL:
        return None
    local_now = _local(now, tz)
    start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == WEEK:
        start -= timedelta(days=7)
    return start


def filter_sessions(
    sessions: Iterable[Session], period: str, now: datetime, tz: Optional[tzinfo] = None
) -> List[Session]:
    start = period_start(period, now, tz)
    if start is None:
        return list(sessions)
    return [s for s in sessions if s.timestamp >= start]


def history(
    sessions: Iterable[Session],
    period: str,
    now: datetime,
    tz: Optional[tzinfo] = None,
    limit: Optional[int] = None,
) -> List[Session]:
    """Sessions in ``period``, newest first, optionally truncated."""
    ordered = sorted(filter_sessions(sessions, period, now, tz), key=lambda s: s.timestamp, reverse=True)
    return ordered[:limit] if limit is not None else ordered


def total_seconds(sessions: Iterable[Session]) -> int:
    return sum(s.duration for s in sessions)


def period_totals(sessions: Sequence[Session], now: datetime, tz: Optional[tzinfo] = None) -> PeriodTotals:
    return PeriodTotals(
        today=total_seconds(filter_sessions(sessions, TODAY, now, tz)),
        week=total_seconds(filter_sessions(sessions, WEEK, now, tz)),
        all_time=total_seconds(sessions),
    )


def streak(sessions: Iterable[Session], now: datetime, tz: Optional[tzinfo] = None) -> int:
    """Consecutive active days ending today or yesterday."""
    days = sorted({local_date(s.timestamp, tz) for s in sessions}, reverse=True)
    if not days:
        return 0
    today = local_date(now, tz)
    if (today - days[0]).days > 1:
        return 0
    count = 1
    for previous, current in zip(days, days[1:]):
        if (previous - current).days != 1:
            break
        count += 1
    return count


def task_breakdown(sessions: Iterable[Session], top_n: int = 5) -> List[BreakdownEntry]:
    """Seconds per task name, largest first, with the tail folded into "Others".

    Grouping is by the recorded name, so sessions of deleted tasks still count
    under the name they were recorded with.
    """
    if top_n < 1:
        raise ValueError("top_n must be at least 1")
    seconds: Dict[str, int] = {}
    counts: Dict[str, int] = {}
    colors: Dict[str, str] = {}
    for session in sessions:
        seconds[session.task_name] = seconds.get(session.task_name, 0) + session.duration
        counts[session.task_name] = counts.get(session.task_name, 0) + 1
        colors.setdefault(session.task_name, session.task_color)
    grand_total = sum(seconds.values())
    if not grand_total:
        return []

    def _percent(value: int) -> float:
        return round(value / grand_total * 100, 1)

    ranked = sorted(seconds.items(), key=lambda item: (-item[1], item[0]))
    entries = [
        BreakdownEntry(name, colors[name], value, _percent(value), counts[name]) for name, value in ranked[:top_n]
    ]
    rest = ranked[top_n:]
    if rest:
        rest_seconds = sum(value for _name, value in rest)
        entries.append(
            BreakdownEntry(
                OTHERS_LABEL,
                OTHERS_COLOR,
                rest_seconds,
                _percent(rest_seconds),
                sum(counts[name] for name, _value in rest),
            )
        )
    return entries


def summary(sessions: Sequence[Session], now: datetime, tz: Optional[tzinfo] = None) -> StatsSummary:
    todays = filter_sessions(sessions, TODAY, now, tz)
    return StatsSummary(
        today_seconds=total_seconds(todays),
        today_sessions=len(todays),
        streak=streak(sessions, now, tz),
    )


# Display helpers
def format_clock(seconds: int) -> str:
    """Timer face, ``M:SS``."""
    return f"{seconds // 60}:{seconds % 60:02d}"


def format_task_total(seconds: int) -> str:
    """Task accumulated time, ``HH:MM``."""
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}"


def format_focus_time(seconds: int) -> str:
    """Daily focus time, ``2h 5m`` or ``45m``."""
    hours, minutes = seconds // 3600, (seconds % 3600) // 60
    return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"
