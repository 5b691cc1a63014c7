"""Client-side focus timer that reconciles with the server.

The server never runs a countdown. It only stores timestamps: a running
session has a ``targetEnd``, a paused one has an open pause interval, a
stopped one has an ``endAt``. :class:`FocusTimer` rebuilds the countdown from
those on :meth:`FocusTimer.restore`, then drives a local tick.

Transitions are optimistic. Local state changes first and the matching API
call is best-effort: a failed call is logged and the local state is kept.
The next restore pulls server truth back in (immediately, when
``reconcile_on_failure`` is set).
"""
import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from enum import Enum

import httpx
from pydantic import ValidationError

from manifest.client.api import TimerApiError, TimerClient
from manifest.config import settings
from manifest.schemas.timer import ActiveSessionResponse, FocusSessionHistory
from manifest.services.timeline import TimelineEvent, build_timeline
from manifest.services.timer_math import MODES, MS_PER_MINUTE, as_utc, remaining_until

logger = logging.getLogger(__name__)

TICK_INTERVAL_SECONDS = 0.5

CompletionCallback = Callable[["FocusTimer"], Awaitable[None] | None]


class TimerState(str, Enum):
    ABSENT = "absent"
    RESTORING = "restoring"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FocusTimer:
    def __init__(
        self,
        client: TimerClient,
        *,
        clock: Callable[[], datetime] = _utcnow,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        reconcile_on_failure: bool = False,
    ):
        self._client = client
        self._clock = clock
        self._tick_interval = tick_interval
        self._tick_task: asyncio.Task | None = None
        self._on_complete: list[CompletionCallback] = []
        self.reconcile_on_failure = reconcile_on_failure

        self.state = TimerState.ABSENT
        self.mode = "focus"
        self.focus_minutes = settings.DEFAULT_FOCUS_MINUTES
        self.break_minutes = settings.DEFAULT_BREAK_MINUTES
        self.note = ""
        self.session_id: str | None = None
        self.target_end: datetime | None = None
        self.remaining_ms = self.duration_minutes * MS_PER_MINUTE
        self.last_error: Exception | None = None

    @property
    def duration_minutes(self) -> int:
        return self.focus_minutes if self.mode == "focus" else self.break_minutes

    @property
    def is_active(self) -> bool:
        return self.state in (TimerState.RUNNING, TimerState.PAUSED)

    def on_complete(self, callback: CompletionCallback) -> None:
        """Run ``callback(timer)`` when a countdown reaches zero."""
        self._on_complete.append(callback)

    # Ticking

    def _start_ticking(self) -> None:
        self._cancel_tick()
        self._tick_task = asyncio.create_task(self._run_ticks())

    def _cancel_tick(self) -> None:
        task = self._tick_task
        self._tick_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run_ticks(self) -> None:
        # A replaced task exits instead of ticking alongside its successor
        while self._tick_task is asyncio.current_task() and self.state is TimerState.RUNNING:
            await asyncio.sleep(self._tick_interval)
            await self.tick()

    async def tick(self) -> int:
        """Recompute remaining time from the target end; complete at zero."""
        if self.state is not TimerState.RUNNING or self.target_end is None:
            return self.remaining_ms
        now = self._clock()
        self.remaining_ms = remaining_until(self.target_end, now)
        if self.remaining_ms <= 0:
            await self._complete(now)
        return self.remaining_ms

    async def _complete(self, now: datetime) -> None:
        self._cancel_tick()
        self.state = TimerState.COMPLETED
        self.remaining_ms = 0
        self.target_end = None
        session_id, self.session_id = self.session_id, None

        for callback in self._on_complete:
            try:
                result = callback(self)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Completion callback failed")

        # Never reconcile a failed completion stop: the server still shows it running
        if session_id:
            await self._best_effort(
                "stop", self._client.stop(session_id, stopped_at=now), reconcile=False
            )

    async def close(self) -> None:
        """Stop the local tick, e.g. when the owning view goes away."""
        task = self._tick_task
        self._cancel_tick()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # Server calls

    async def _best_effort(self, action: str, call: Awaitable, reconcile: bool = True):
        try:
            return await call
        except (httpx.HTTPError, TimerApiError, ValidationError) as e:
            self.last_error = e
            logger.warning("Timer %s failed, keeping local state: %s", action, e)
            if reconcile and self.reconcile_on_failure and self.state is not TimerState.RESTORING:
                await self.restore()
            return None

    async def restore(self) -> TimerState:
        """Rebuild local state from the server's active session."""
        previous = self.state
        self.state = TimerState.RESTORING
        try:
            active = await self._client.active()
        except (httpx.HTTPError, TimerApiError, ValidationError) as e:
            self.last_error = e
            logger.warning("Could not restore timer state: %s", e)
            self.state = TimerState.ABSENT if previous is TimerState.RESTORING else previous
            return self.state

        self._apply_active(active)
        return self.state

    def _apply_active(self, active: ActiveSessionResponse) -> None:
        self._cancel_tick()
        session = active.session
        if session is None:
            self.session_id = None
            self.target_end = None
            self.state = TimerState.ABSENT
            self.remaining_ms = self.duration_minutes * MS_PER_MINUTE
            return

        self.session_id = str(session.id)
        self.mode = session.mode
        self.note = session.note or ""
        if session.planned_minutes:
            if session.mode == "focus":
                self.focus_minutes = session.planned_minutes
            else:
                self.break_minutes = session.planned_minutes

        if session.target_end is not None:
            self.state = TimerState.RUNNING
            self.target_end = as_utc(session.target_end)
            self.remaining_ms = remaining_until(self.target_end, self._clock())
            self._start_ticking()
        else:
            self.state = TimerState.PAUSED
            self.target_end = None
            if active.remaining_ms is not None:
                self.remaining_ms = active.remaining_ms
            else:
                logger.info("Server did not report remaining time, keeping %d ms", self.remaining_ms)

    # User actions

    async def start(self) -> None:
        if self.state not in (TimerState.ABSENT, TimerState.COMPLETED):
            return
        now = self._clock()
        planned = self.duration_minutes
        target_end = now + timedelta(minutes=planned)

        self.state = TimerState.RUNNING
        self.session_id = None
        self.target_end = target_end
        self.remaining_ms = planned * MS_PER_MINUTE
        self._start_ticking()

        session = await self._best_effort(
            "start",
            self._client.start(
                planned_minutes=planned,
                mode=self.mode,
                note=self.note or None,
                start_at=now,
                target_end=target_end,
            ),
        )
        if session is not None:
            self.session_id = str(session.id)

    async def pause(self) -> None:
        if self.state is not TimerState.RUNNING:
            return
        now = self._clock()
        self._cancel_tick()
        self.remaining_ms = remaining_until(self.target_end, now)
        self.target_end = None
        self.state = TimerState.PAUSED

        if self.session_id:
            await self._best_effort("pause", self._client.pause(self.session_id, started_at=now))

    async def resume(self) -> None:
        if self.state is not TimerState.PAUSED:
            return
        now = self._clock()
        target_end = now + timedelta(milliseconds=self.remaining_ms)
        self.target_end = target_end
        self.state = TimerState.RUNNING
        self._start_ticking()

        if self.session_id:
            await self._best_effort(
                "resume",
                self._client.resume(self.session_id, ended_at=now, target_end=target_end),
            )

    async def stop(self) -> None:
        if not self.is_active:
            return
        now = self._clock()
        self._cancel_tick()
        self.state = TimerState.ABSENT
        self.target_end = None
        self.remaining_ms = 0
        session_id, self.session_id = self.session_id, None

        if session_id:
            await self._best_effort("stop", self._client.stop(session_id, stopped_at=now))

    async def set_planned_minutes(self, minutes: int) -> None:
        """Change the duration; allowed when idle or paused, ignored while running."""
        if minutes < 1:
            raise ValueError("Planned minutes must be at least 1")
        if self.state in (TimerState.RUNNING, TimerState.RESTORING):
            return

        if self.mode == "focus":
            self.focus_minutes = minutes
        else:
            self.break_minutes = minutes

        if self.state is not TimerState.PAUSED:
            self.remaining_ms = minutes * MS_PER_MINUTE
            return
        if not self.session_id:
            return

        # Remaining time of a paused session depends on planned minutes, so
        # take the server's recomputation rather than patching it locally.
        updated = await self._best_effort(
            "update", self._client.update(self.session_id, planned_minutes=minutes)
        )
        if updated is None:
            return
        active = await self._best_effort("refresh", self._client.active())
        if active is None or active.session is None:
            return
        if active.session.target_end is None and active.remaining_ms is not None:
            self.remaining_ms = active.remaining_ms

    async def set_note(self, note: str) -> None:
        self.note = note
        if self.is_active and self.session_id:
            await self._best_effort("update", self._client.update(self.session_id, note=note))

    def set_mode(self, mode: str) -> None:
        if mode not in MODES:
            raise ValueError(f"Unknown timer mode: {mode}")
        if self.is_active:
            return
        self.mode = mode
        self.remaining_ms = self.duration_minutes * MS_PER_MINUTE

    # History

    async def history(self, **filters) -> list[tuple[FocusSessionHistory, list[TimelineEvent]]]:
        """Past sessions with their pause/resume/stop timelines."""
        listing = await self._client.list_sessions(**filters)
        return [(session, timeline(session)) for session in listing.sessions]


def timeline(session: FocusSessionHistory) -> list[TimelineEvent]:
    return build_timeline(
        [p.model_dump() for p in session.pauses],
        [s.model_dump() for s in session.stops],
    )
