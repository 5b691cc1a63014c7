"""Pause/resume/stop timeline built from a session's pause and stop history."""
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from manifest.services.timer_math import as_utc

PAUSED = "Paused"
RESUMED = "Resumed"
STOPPED = "Stopped"


@dataclass(frozen=True)
class TimelineEvent:
    id: str
    type: str  # Paused, Resumed, Stopped
    at: datetime


def build_timeline(
    pauses: Iterable[dict[str, Any]],
    stops: Iterable[dict[str, Any]],
) -> list[TimelineEvent]:
    """Merge pause intervals and stop events into one ascending timeline.

    ``pauses`` items carry ``id``, ``start_at`` and ``end_at``; ``stops``
    items carry ``id`` and ``stop_at``. An open pause yields only its
    ``Paused`` event.
    """
    events: list[TimelineEvent] = []
    for pause in pauses:
        events.append(TimelineEvent(f"pause-{pause['id']}", PAUSED, as_utc(pause["start_at"])))
        if pause.get("end_at") is not None:
            events.append(TimelineEvent(f"resume-{pause['id']}", RESUMED, as_utc(pause["end_at"])))
    for stop in stops:
        events.append(TimelineEvent(f"stop-{stop['id']}", STOPPED, as_utc(stop["stop_at"])))
    # sorted() is stable, so a pause and resume at the same instant keep their order
    return sorted(events, key=lambda e: e.at)
