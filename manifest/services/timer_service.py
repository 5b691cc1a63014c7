"""Focus timer session controller.

Every function is scoped to one owner and works inside the caller's
transaction. Session rows are selected ``FOR UPDATE`` before a
read-modify-write so concurrent pause/resume/stop requests for the same
session serialize on databases that support row locks.

Lookups that miss (unknown id, malformed id, or another owner's session)
return ``None``; routers turn that into a 404 without telling the cases
apart.
"""
import logging
import uuid
from dataclasses import asdict
from datetime import date, datetime, time, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from manifest.config import settings
from manifest.models.focus_session import FocusSession
from manifest.models.timer_pause import TimerPause
from manifest.models.timer_stop import TimerStop
from manifest.services.timeline import build_timeline
from manifest.services.timer_math import (
    as_utc,
    elapsed_minutes,
    remaining_at_pause,
    remaining_until,
    target_end_for,
)

logger = logging.getLogger(__name__)


class SessionClosedError(Exception):
    """The session was stopped and no longer accepts pause, resume or edits."""

    def __init__(self, session_id: uuid.UUID):
        super().__init__(f"Session {session_id} is already stopped")
        self.session_id = session_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_id(value: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(value)
    except (TypeError, ValueError):
        return None


async def _get_owned_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    session_id: str | uuid.UUID,
) -> FocusSession | None:
    sid = _parse_id(session_id)
    if sid is None:
        return None
    result = await db.execute(
        select(FocusSession)
        .where(FocusSession.id == sid, FocusSession.user_id == user_id)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def _get_open_pause(db: AsyncSession, session_id: uuid.UUID) -> TimerPause | None:
    result = await db.execute(
        select(TimerPause)
        .where(TimerPause.session_id == session_id, TimerPause.ended_at.is_(None))
        .order_by(TimerPause.started_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_pauses(db: AsyncSession, session_ids: list[uuid.UUID]) -> list[TimerPause]:
    result = await db.execute(
        select(TimerPause)
        .where(TimerPause.session_id.in_(session_ids))
        .order_by(TimerPause.started_at.asc())
    )
    return list(result.scalars().all())


async def get_stops(db: AsyncSession, session_ids: list[uuid.UUID]) -> list[TimerStop]:
    result = await db.execute(
        select(TimerStop)
        .where(TimerStop.session_id.in_(session_ids))
        .order_by(TimerStop.stopped_at.asc())
    )
    return list(result.scalars().all())


async def start_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    mode: str = "focus",
    planned_minutes: int | None = None,
    note: str | None = None,
    start_at: datetime | None = None,
    target_end: datetime | None = None,
) -> FocusSession:
    """Create a running session.

    An already active session is left alone; the active query only ever
    looks at the most recent one, so the older row is orphaned.
    """
    start_at = as_utc(start_at or _utcnow())
    if target_end is None:
        target_end = target_end_for(start_at, planned_minutes, mode)

    session = FocusSession(
        user_id=user_id,
        mode=mode,
        start_at=start_at,
        planned_minutes=planned_minutes,
        target_end=as_utc(target_end),
        note=note,
    )
    db.add(session)
    await db.flush()
    await db.refresh(session)
    logger.info("Started %s session %s", mode, session.id, extra={"user_id": str(user_id)})
    return session


async def pause_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    session_id: str | uuid.UUID,
    started_at: datetime | None = None,
) -> TimerPause | None:
    session = await _get_owned_session(db, user_id, session_id)
    if session is None:
        return None
    if session.end_at is not None:
        raise SessionClosedError(session.id)

    # A repeated pause returns the interval that is already open
    existing = await _get_open_pause(db, session.id)
    if existing is not None:
        return existing

    pause = TimerPause(
        session_id=session.id,
        user_id=user_id,
        started_at=as_utc(started_at or _utcnow()),
        ended_at=None,
    )
    db.add(pause)
    session.target_end = None

    await db.flush()
    await db.refresh(pause)
    return pause


async def resume_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    session_id: str | uuid.UUID,
    ended_at: datetime | None = None,
    target_end: datetime | None = None,
) -> FocusSession | None:
    """Close the open pause and, when given, set the new target end.

    The caller computes ``target_end`` from the remaining time it froze at
    pause; it is stored as is.
    """
    session = await _get_owned_session(db, user_id, session_id)
    if session is None:
        return None
    if session.end_at is not None:
        raise SessionClosedError(session.id)

    open_pause = await _get_open_pause(db, session.id)
    if open_pause is not None:
        open_pause.ended_at = as_utc(ended_at or _utcnow())
    if target_end is not None:
        session.target_end = as_utc(target_end)

    await db.flush()
    await db.refresh(session)
    return session


async def _finalize(
    db: AsyncSession, session: FocusSession, stopped_at: datetime
) -> TimerStop:
    open_pause = await _get_open_pause(db, session.id)
    if open_pause is not None:
        open_pause.ended_at = stopped_at

    stop = TimerStop(session_id=session.id, user_id=session.user_id, stopped_at=stopped_at)
    db.add(stop)
    session.duration_minutes = elapsed_minutes(session.start_at, stopped_at)
    session.end_at = stopped_at

    await db.flush()
    await db.refresh(session)
    await db.refresh(stop)
    return stop


async def stop_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    session_id: str | uuid.UUID,
    stopped_at: datetime | None = None,
) -> tuple[FocusSession, TimerStop] | None:
    """Finalize a session. Stopping twice is allowed: the last stop wins."""
    session = await _get_owned_session(db, user_id, session_id)
    if session is None:
        return None
    if session.end_at is not None:
        logger.info("Session %s stopped again, recomputing duration", session.id)

    stop = await _finalize(db, session, as_utc(stopped_at or _utcnow()))
    return session, stop


async def update_session_fields(
    db: AsyncSession,
    user_id: uuid.UUID,
    session_id: str | uuid.UUID,
    fields: dict,
) -> FocusSession | None:
    """Merge ``note`` and/or ``planned_minutes`` without touching the countdown."""
    session = await _get_owned_session(db, user_id, session_id)
    if session is None:
        return None

    data = {}
    if "note" in fields:
        data["note"] = fields["note"]
    if fields.get("planned_minutes") is not None:
        data["planned_minutes"] = fields["planned_minutes"]
    if not data:
        raise ValueError("No fields to update")
    if session.end_at is not None:
        raise SessionClosedError(session.id)

    for key, value in data.items():
        setattr(session, key, value)

    await db.flush()
    await db.refresh(session)
    return session


async def get_active_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> tuple[FocusSession | None, int | None]:
    """Return the most recent unstopped session and its remaining milliseconds.

    Remaining is ``None`` when the pause history needed for a paused
    session could not be read.
    """
    now = as_utc(now or _utcnow())
    result = await db.execute(
        select(FocusSession)
        .where(FocusSession.user_id == user_id, FocusSession.end_at.is_(None))
        .order_by(FocusSession.start_at.desc())
        .limit(1)
    )
    session = result.scalar_one_or_none()
    if session is None:
        return None, None

    if session.target_end is not None:
        if settings.TIMER_AUTO_STOP_EXPIRED and as_utc(session.target_end) <= now:
            logger.info("Auto-stopping expired session %s", session.id)
            await _finalize(db, session, as_utc(session.target_end))
            return None, None
        return session, remaining_until(session.target_end, now)

    try:
        pauses = await get_pauses(db, [session.id])
    except SQLAlchemyError:
        logger.warning("Pause history unavailable for session %s", session.id, exc_info=True)
        return session, None

    remaining = remaining_at_pause(
        session.start_at,
        session.planned_minutes,
        session.mode,
        [(p.started_at, p.ended_at) for p in pauses],
    )
    return session, remaining


def _serialize(session: FocusSession) -> dict:
    return {c.name: getattr(session, c.name) for c in session.__table__.columns}


async def list_sessions(
    db: AsyncSession,
    user_id: uuid.UUID,
    mode: str | None = None,
    created_from: date | None = None,
    created_to: date | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[dict], int]:
    """Page through the owner's sessions with pause, stop and event history."""
    conditions = [FocusSession.user_id == user_id]
    if mode:
        conditions.append(FocusSession.mode == mode)
    if created_from:
        conditions.append(
            FocusSession.created_at >= datetime.combine(created_from, time.min, tzinfo=timezone.utc)
        )
    if created_to:
        conditions.append(
            FocusSession.created_at
            <= datetime.combine(created_to, time(23, 59, 59, 999000), tzinfo=timezone.utc)
        )

    total = (
        await db.execute(select(func.count(FocusSession.id)).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(FocusSession)
        .where(*conditions)
        .order_by(FocusSession.start_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    sessions = list(result.scalars().all())
    ids = [s.id for s in sessions]

    pauses: list[TimerPause] = []
    stops: list[TimerStop] = []
    if ids:
        try:
            pauses = await get_pauses(db, ids)
        except SQLAlchemyError:
            logger.warning("Pause history unavailable, listing sessions without it", exc_info=True)
        try:
            stops = await get_stops(db, ids)
        except SQLAlchemyError:
            logger.warning("Stop history unavailable, listing sessions without it", exc_info=True)

    pause_map: dict[uuid.UUID, list[dict]] = {}
    for p in pauses:
        pause_map.setdefault(p.session_id, []).append(
            {"id": p.id, "start_at": p.started_at, "end_at": p.ended_at}
        )
    stop_map: dict[uuid.UUID, list[dict]] = {}
    for s in stops:
        stop_map.setdefault(s.session_id, []).append({"id": s.id, "stop_at": s.stopped_at})

    items = []
    for session in sessions:
        item = _serialize(session)
        item["pauses"] = pause_map.get(session.id, [])
        item["stops"] = stop_map.get(session.id, [])
        item["events"] = [asdict(e) for e in build_timeline(item["pauses"], item["stops"])]
        items.append(item)
    return items, total


async def record_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    start_at: datetime | None = None,
    end_at: datetime | None = None,
    duration_minutes: int | None = None,
    note: str | None = None,
) -> FocusSession:
    """Save an already finished session in one call."""
    start_at = as_utc(start_at or _utcnow())
    # Always stored as stopped so it cannot pose as a paused session
    end_at = as_utc(end_at or _utcnow())
    session = FocusSession(
        user_id=user_id,
        mode="focus",
        start_at=start_at,
        end_at=end_at,
        duration_minutes=duration_minutes or elapsed_minutes(start_at, end_at),
        note=note,
    )
    db.add(session)
    await db.flush()
    await db.refresh(session)
    return session
