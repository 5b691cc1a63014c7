"""Time arithmetic for focus timer sessions.

Everything here is pure: callers pass timestamps in, numbers come out.
SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so every input goes through :func:`as_utc` first.
"""
import math
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from manifest.config import settings

MS_PER_MINUTE = 60_000

MODES = ("focus", "break")


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ms_between(start: datetime, end: datetime) -> int:
    return round((as_utc(end) - as_utc(start)) / timedelta(milliseconds=1))


def default_planned_minutes(mode: str) -> int:
    if mode == "break":
        return settings.DEFAULT_BREAK_MINUTES
    return settings.DEFAULT_FOCUS_MINUTES


def planned_ms(planned_minutes: int | None, mode: str) -> int:
    minutes = planned_minutes or default_planned_minutes(mode)
    return minutes * MS_PER_MINUTE


def target_end_for(start_at: datetime, planned_minutes: int | None, mode: str) -> datetime:
    return as_utc(start_at) + timedelta(milliseconds=planned_ms(planned_minutes, mode))


def remaining_until(target_end: datetime, now: datetime) -> int:
    """Milliseconds left on a running countdown, never negative."""
    return max(0, ms_between(now, target_end))


def remaining_at_pause(
    start_at: datetime,
    planned_minutes: int | None,
    mode: str,
    pauses: Iterable[tuple[datetime, datetime | None]],
) -> int:
    """Remaining milliseconds of a paused session, frozen at the open pause.

    ``pauses`` yields ``(started_at, ended_at)`` pairs. Closed intervals are
    summed as paused time; the open one (``ended_at is None``) marks the
    instant the countdown stopped. Active time is the span from the session
    start to that instant minus the closed pause time.
    """
    completed_pause_ms = 0
    open_pause_start: datetime | None = None
    for started_at, ended_at in pauses:
        if ended_at is not None:
            completed_pause_ms += max(0, ms_between(started_at, ended_at))
        else:
            open_pause_start = started_at

    until_pause_ms = 0
    if open_pause_start is not None:
        until_pause_ms = max(
            0, ms_between(start_at, open_pause_start) - completed_pause_ms
        )
    return max(0, planned_ms(planned_minutes, mode) - until_pause_ms)


def elapsed_minutes(start_at: datetime, stopped_at: datetime) -> int:
    """Wall-clock minutes from start to stop, paused time included, at least 1."""
    minutes = ms_between(start_at, stopped_at) / MS_PER_MINUTE
    # Half a minute rounds up, not to even
    return max(1, math.floor(minutes + 0.5))
